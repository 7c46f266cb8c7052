from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Numeric, Boolean,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edufin.database import Base

# Fee application lifecycle
APPLICATION_STATUS_ONBOARDING_PENDING = "onboarding_pending"
APPLICATION_STATUS_EMI_PENDING = "emi_pending"
APPLICATION_STATUS_PLATFORM_REVIEW = "platform_review"
APPLICATION_STATUS_APPROVED = "approved"
APPLICATION_STATUS_REJECTED = "rejected"
APPLICATION_STATUS_ACTIVE = "active"
APPLICATION_STATUS_COMPLETED = "completed"

DELETABLE_APPLICATION_STATUSES = (
    APPLICATION_STATUS_ONBOARDING_PENDING,
    APPLICATION_STATUS_EMI_PENDING,
)
REVIEWABLE_APPLICATION_STATUSES = (
    APPLICATION_STATUS_EMI_PENDING,
    APPLICATION_STATUS_PLATFORM_REVIEW,
)
SCHEDULABLE_APPLICATION_STATUSES = (
    APPLICATION_STATUS_EMI_PENDING,
    APPLICATION_STATUS_PLATFORM_REVIEW,
    APPLICATION_STATUS_APPROVED,
)
PAYABLE_APPLICATION_STATUSES = (
    APPLICATION_STATUS_APPROVED,
    APPLICATION_STATUS_ACTIVE,
)

INSTALLMENT_STATUS_PENDING = "pending"
INSTALLMENT_STATUS_PAID = "paid"
INSTALLMENT_STATUS_OVERDUE = "overdue"

PAYMENT_STATUS_COMPLETED = "completed"

PAYMENT_TYPE_EMI = "emi_payment"
PAYMENT_TYPE_INSTITUTION = "institution_payment"
PAYMENT_TYPE_PLATFORM_TO_INSTITUTION = "platform_to_institution"

# Fee Application model
class FeeApplication(Base):
    __tablename__ = "fee_applications"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_structure_id = Column(Integer, ForeignKey("fee_structures.id"), nullable=False)
    emi_plan_id = Column(Integer, ForeignKey("emi_plans.id"), nullable=True)
    status = Column(String(30), default=APPLICATION_STATUS_ONBOARDING_PENDING, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    remaining_amount = Column(Numeric(12, 2), nullable=False)
    monthly_installment = Column(Numeric(12, 2))
    applied_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    approved_at = Column(DateTime(timezone=True))
    approved_by = Column(Integer, ForeignKey("users.id"))
    rejected_at = Column(DateTime(timezone=True))
    platform_paid_to_institution = Column(Boolean, default=False, nullable=False)
    institution_payment_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('onboarding_pending', 'emi_pending', 'platform_review', "
            "'approved', 'rejected', 'active', 'completed')",
            name="check_fee_application_status",
        ),
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= total_amount",
            name="check_fee_application_remaining_amount",
        ),
    )

    # Relationships. Loaded eagerly so async sessions never lazy-load them.
    student = relationship("Student", back_populates="applications", lazy="selectin")
    fee_structure = relationship("FeeStructure", lazy="selectin")
    emi_plan = relationship("EmiPlan", lazy="selectin")
    installments = relationship(
        "Installment",
        back_populates="fee_application",
        order_by="Installment.installment_number",
    )

# Installment model
class Installment(Base):
    __tablename__ = "installments"

    id = Column(Integer, primary_key=True, index=True)
    fee_application_id = Column(Integer, ForeignKey("fee_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    paid_date = Column(DateTime(timezone=True))
    status = Column(String(20), default=INSTALLMENT_STATUS_PENDING, nullable=False)
    payment_id = Column(
        Integer,
        ForeignKey("payments.id", use_alter=True, name="fk_installments_payment_id"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("fee_application_id", "installment_number", name="uq_installment_number"),
        CheckConstraint("status IN ('pending', 'paid', 'overdue')", name="check_installment_status"),
        CheckConstraint("amount > 0", name="check_installment_amount"),
    )

    # Relationships
    fee_application = relationship("FeeApplication", back_populates="installments")

# Payment model. Append-only audit of money movements.
class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default=PAYMENT_STATUS_COMPLETED, nullable=False)
    payment_type = Column(String(30), nullable=False)
    payment_method = Column(String(50))
    payment_gateway = Column(String(50))
    transaction_id = Column(String(100), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    fee_application_id = Column(Integer, ForeignKey("fee_applications.id"), nullable=False, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=True)
    installment_id = Column(Integer, ForeignKey("installments.id"), nullable=True)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "payment_type IN ('emi_payment', 'institution_payment', 'platform_to_institution')",
            name="check_payment_type",
        ),
    )
