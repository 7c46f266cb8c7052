from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edufin.database import Base

ROLE_ADMIN = "admin"
ROLE_PARENT = "parent"

# Users are mirrored from the identity provider; credentials live there
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_PARENT)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'parent')", name="check_user_role"),
    )

    # Relationships
    students = relationship("Student", back_populates="parent")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

# Student model
class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    parent_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    name = Column(String(255), nullable=False)
    roll_number = Column(String(100))
    class_name = Column(String(100))
    section = Column(String(50))
    admission_date = Column(DateTime(timezone=True))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    parent = relationship("User", back_populates="students")
    institution = relationship("Institution", back_populates="students")
    applications = relationship("FeeApplication", back_populates="student")
