# Import all models to ensure they're registered with SQLAlchemy
from edufin.database import Base
from edufin.models.users import User, Student
from edufin.models.institutions import Institution, FeeStructure, EmiPlan
from edufin.models.finance import FeeApplication, Installment, Payment
