from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from edufin.database import get_db
from edufin.schemas.finance import (
    FeeApplicationCreate, FeeApplicationDetail, FeeApplicationResponse,
    EmiPlanSelection, ReviewAction, ReviewResponse,
    ScheduleGenerationResponse, PaymentInitiationResponse,
)
from edufin.models.users import User, ROLE_PARENT
from edufin.middleware.authentication import get_current_user, RoleChecker
from edufin.services import applications
from edufin.services.payments import initiate_payment
from edufin.services.review import review_application, generate_schedule

router = APIRouter()

allow_parents = RoleChecker([ROLE_PARENT])


@router.post("/applications", response_model=FeeApplicationResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_application(
    application_data: FeeApplicationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    """
    Create a fee application for one of the current parent's students.
    """
    application = await applications.create_application(db, current_user, application_data)
    return {"application": application}


@router.get("/applications", response_model=List[FeeApplicationDetail])
async def get_my_applications(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    """
    Get the applications of all of the current parent's students.
    """
    return await applications.list_parent_applications(db, current_user)


@router.get("/applications/{application_id}", response_model=FeeApplicationDetail)
async def get_fee_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await applications.get_application(db, application_id, current_user)


@router.put("/applications/{application_id}/emi-plan", response_model=FeeApplicationDetail)
async def choose_emi_plan(
    application_id: int,
    selection: EmiPlanSelection,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Choose (or change) the EMI plan of an application that has not been submitted.
    """
    return await applications.choose_emi_plan(db, application_id, current_user, selection.emi_plan_id)


@router.post("/applications/{application_id}/submit", response_model=FeeApplicationDetail)
async def submit_fee_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Submit an application for platform review.
    """
    return await applications.submit_for_review(db, application_id, current_user)


@router.delete("/applications/{application_id}")
async def delete_fee_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete an application that is still being onboarded.
    """
    student_removed = await applications.delete_application(db, application_id, current_user)
    return {
        "message": "Application deleted successfully",
        "student_removed": student_removed,
    }


@router.post("/applications/{application_id}/initiate-payment", response_model=PaymentInitiationResponse)
async def initiate_application_payment(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Pay the institution in full for an approved application and start the EMI schedule.
    """
    return await initiate_payment(db, application_id, current_user)


@router.patch("/applications/{application_id}", response_model=ReviewResponse)
async def review_fee_application(
    application_id: int,
    review: ReviewAction,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Approve or reject an application. Approval generates the installment schedule.
    """
    return await review_application(db, application_id, current_user, review.action)


@router.post("/applications/{application_id}/generate-installments", response_model=ScheduleGenerationResponse)
async def generate_application_installments(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Generate the installment schedule of an application that has none.
    """
    count = await generate_schedule(db, application_id, current_user)
    return {
        "application_id": application_id,
        "count": count,
        "message": f"Generated {count} installments",
    }
