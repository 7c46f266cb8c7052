from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edufin.database import get_db
from edufin.schemas.finance import (
    AdminApplicationList, ApplicationStatusEnum, InstitutionSummary, OverdueSweepResponse,
)
from edufin.models.users import User, ROLE_ADMIN
from edufin.middleware.authentication import get_current_user, RoleChecker
from edufin.services.applications import list_review_applications, institution_summary
from edufin.services.payments import mark_overdue_installments

router = APIRouter()

allow_platform_admins = RoleChecker([ROLE_ADMIN])


@router.get("/admin/applications", response_model=AdminApplicationList)
async def get_review_applications(
    status: Optional[ApplicationStatusEnum] = Query(None),
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_platform_admins)
):
    """
    Get applications with an EMI plan, optionally filtered by status, with
    the number awaiting platform review.
    """
    return await list_review_applications(
        db, status=status.value if status else None, skip=skip, limit=limit
    )


@router.get("/admin/institutions/{institution_id}/summary", response_model=InstitutionSummary)
async def get_institution_summary(
    institution_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_platform_admins)
):
    """
    Get application counts and the amount collected for an institution.
    """
    return await institution_summary(db, institution_id)


@router.post("/admin/installments/mark-overdue", response_model=OverdueSweepResponse)
async def mark_installments_overdue(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Mark every pending installment past its due date as overdue.
    """
    count = await mark_overdue_installments(db, current_user)
    return {"count": count}
