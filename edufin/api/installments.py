from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edufin.database import get_db
from edufin.schemas.finance import (
    InstallmentListResponse, PaymentReceipt, TransactionListResponse, PaymentInDB,
)
from edufin.models.users import User, ROLE_PARENT
from edufin.middleware.authentication import get_current_user, RoleChecker
from edufin.services import payments

router = APIRouter()

allow_parents = RoleChecker([ROLE_PARENT])


@router.get("/installments", response_model=InstallmentListResponse)
async def get_installments(
    application_id: int = Query(..., alias="applicationId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get the installments of an application with a paid/pending/overdue summary.
    """
    return await payments.list_installments(db, application_id, current_user)


@router.post("/installments/{installment_id}/pay", response_model=PaymentReceipt)
async def pay_installment(
    installment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Pay an installment. Only the parent of the student can pay.
    """
    return await payments.pay_installment(db, installment_id, current_user)


@router.get("/transactions", response_model=TransactionListResponse)
async def get_transactions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    """
    Get the installments of all of the current parent's students.
    """
    transactions = await payments.list_transactions(db, current_user)
    return {"transactions": transactions}


@router.get("/payments", response_model=List[PaymentInDB])
async def get_payments(
    application_id: int = Query(..., alias="applicationId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await payments.list_payments(db, application_id, current_user)
