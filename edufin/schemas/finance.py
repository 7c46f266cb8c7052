from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field
from enum import Enum

from edufin.schemas.catalog import StudentInDB, FeeStructureInDB, EmiPlanInDB


class ApplicationStatusEnum(str, Enum):
    onboarding_pending = "onboarding_pending"
    emi_pending = "emi_pending"
    platform_review = "platform_review"
    approved = "approved"
    rejected = "rejected"
    active = "active"
    completed = "completed"


class InstallmentStatusEnum(str, Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


# Fee application schemas
class FeeApplicationCreate(BaseModel):
    student_id: int
    fee_structure_id: int
    emi_plan_id: Optional[int] = None


class EmiPlanSelection(BaseModel):
    emi_plan_id: int


class FeeApplicationInDB(BaseModel):
    id: int
    student_id: int
    fee_structure_id: int
    emi_plan_id: Optional[int] = None
    status: ApplicationStatusEnum
    total_amount: Decimal
    remaining_amount: Decimal
    monthly_installment: Optional[Decimal] = None
    applied_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    platform_paid_to_institution: bool = False

    class Config:
        from_attributes = True


class FeeApplicationDetail(FeeApplicationInDB):
    student: StudentInDB
    fee_structure: FeeStructureInDB
    emi_plan: Optional[EmiPlanInDB] = None


class FeeApplicationResponse(BaseModel):
    application: FeeApplicationDetail


class AdminApplicationList(BaseModel):
    applications: List[FeeApplicationDetail]
    total: int
    pending_review: int


# Review schemas
class ReviewAction(BaseModel):
    action: str = Field(..., description="approve or reject")


class ReviewResponse(BaseModel):
    application_id: int
    status: ApplicationStatusEnum
    installments_generated: int = 0
    message: str


class ScheduleGenerationResponse(BaseModel):
    application_id: int
    count: int
    message: str


# Installment schemas
class InstallmentInDB(BaseModel):
    id: int
    fee_application_id: int
    installment_number: int
    amount: Decimal
    due_date: datetime
    paid_date: Optional[datetime] = None
    status: InstallmentStatusEnum
    payment_id: Optional[int] = None

    class Config:
        from_attributes = True


class InstallmentSummary(BaseModel):
    total: int
    paid: int
    pending: int
    overdue: int
    total_amount: Decimal
    paid_amount: Decimal


class InstallmentListResponse(BaseModel):
    installments: List[InstallmentInDB]
    summary: InstallmentSummary


class PaymentReceipt(BaseModel):
    payment_id: int
    transaction_id: str
    installment_id: int
    installment_number: int
    amount: Decimal
    remaining_amount: str
    application_status: ApplicationStatusEnum
    message: str = "Payment successful"


class TransactionItem(BaseModel):
    installment_id: int
    application_id: int
    installment_number: int
    amount: Decimal
    status: InstallmentStatusEnum
    due_date: datetime
    paid_date: Optional[datetime] = None
    payment_id: Optional[int] = None
    student_name: str
    institution_name: str
    description: str


class TransactionListResponse(BaseModel):
    transactions: List[TransactionItem]


class OverdueSweepResponse(BaseModel):
    count: int


# Payment schemas
class PaymentInDB(BaseModel):
    id: int
    amount: Decimal
    status: str
    payment_type: str
    payment_method: Optional[str] = None
    payment_gateway: Optional[str] = None
    transaction_id: str
    user_id: Optional[int] = None
    fee_application_id: int
    institution_id: Optional[int] = None
    installment_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentInitiationResponse(BaseModel):
    application_id: int
    parent_payment_id: int
    platform_payment_id: int
    transaction_id: str
    platform_transaction_id: str
    installments: int
    total_amount: Decimal
    status: ApplicationStatusEnum


# Institution collection summary
class InstitutionSummary(BaseModel):
    institution_id: int
    total_applications: int
    pending_approvals: int
    active_emis: int
    completed: int
    total_collected: Decimal
