from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Numeric, Boolean, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edufin.database import Base

# Institution model
class Institution(Base):
    __tablename__ = "institutions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    type = Column(String(20), nullable=False, default="school")
    address = Column(Text)
    phone = Column(String(50))
    email = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("type IN ('school', 'college')", name="check_institution_type"),
    )

    # Relationships
    students = relationship("Student", back_populates="institution")
    fee_structures = relationship("FeeStructure", back_populates="institution")

# Fee structure model. Rows are never updated once created.
class FeeStructure(Base):
    __tablename__ = "fee_structures"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(DateTime(timezone=True))
    academic_year = Column(String(20), nullable=False)
    semester = Column(String(50))
    is_recurring = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_fee_structure_amount"),
    )

    # Relationships
    institution = relationship("Institution", back_populates="fee_structures")
    emi_plans = relationship("EmiPlan", back_populates="fee_structure")

# EMI plan model. A plan without a fee structure is offered for every fee.
class EmiPlan(Base):
    __tablename__ = "emi_plans"

    id = Column(Integer, primary_key=True, index=True)
    fee_structure_id = Column(Integer, ForeignKey("fee_structures.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(100), nullable=False)
    installments = Column(Integer, nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False, default=0)
    processing_fee = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("installments > 0", name="check_emi_plan_installments"),
        CheckConstraint("interest_rate >= 0", name="check_emi_plan_interest_rate"),
        CheckConstraint("processing_fee >= 0", name="check_emi_plan_processing_fee"),
    )

    # Relationships
    fee_structure = relationship("FeeStructure", back_populates="emi_plans")
