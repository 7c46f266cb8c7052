import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edufin.exceptions import ConflictError, NotFoundError, ValidationError
from edufin.models.finance import (
    FeeApplication, Installment,
    APPLICATION_STATUS_ONBOARDING_PENDING, APPLICATION_STATUS_EMI_PENDING,
    APPLICATION_STATUS_PLATFORM_REVIEW, APPLICATION_STATUS_APPROVED, APPLICATION_STATUS_ACTIVE,
    APPLICATION_STATUS_COMPLETED, DELETABLE_APPLICATION_STATUSES,
)
from edufin.models.users import User, Student
from edufin.schemas.finance import FeeApplicationCreate
from edufin.services.authorization import authorize
from edufin.services.catalog import get_institution, get_fee_structure, get_emi_plan, ensure_plan_offered
from edufin.services.schedule import monthly_installment, to_money

logger = logging.getLogger(__name__)


async def load_application(db: AsyncSession, application_id: int) -> FeeApplication:
    """
    Fetch an application with its student, fee structure and plan, replacing
    whatever the session already holds for it.
    """
    result = await db.execute(
        select(FeeApplication)
        .where(FeeApplication.id == application_id)
        .execution_options(populate_existing=True)
    )
    application = result.scalars().first()
    if not application:
        raise NotFoundError("Application not found")
    return application


async def get_application(
    db: AsyncSession,
    application_id: int,
    user: User,
    allow_admin: bool = True,
    action: str = "access this application",
) -> FeeApplication:
    application = await load_application(db, application_id)
    authorize(user, application.student, allow_admin=allow_admin, action=action)
    return application


async def get_owned_student(db: AsyncSession, student_id: int, parent: User) -> Student:
    result = await db.execute(
        select(Student).where(Student.id == student_id, Student.parent_id == parent.id)
    )
    student = result.scalars().first()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def create_application(db: AsyncSession, parent: User, data: FeeApplicationCreate) -> FeeApplication:
    """
    Create a fee application for one of the parent's students.

    The total is copied from the fee structure. With an EMI plan the
    application starts in ``emi_pending`` with its monthly installment set,
    otherwise in ``onboarding_pending``. No installments are created until
    the application is approved.

    Raises:
        NotFoundError: If the student (of this parent), fee structure or plan does not exist
        ValidationError: If the fee structure belongs to another institution or the plan is not offered
    """
    student = await get_owned_student(db, data.student_id, parent)
    fee_structure = await get_fee_structure(db, data.fee_structure_id)

    if fee_structure.institution_id != student.institution_id:
        raise ValidationError("Fee structure and student must be from the same institution")

    application = FeeApplication(
        student_id=student.id,
        fee_structure_id=fee_structure.id,
        total_amount=fee_structure.amount,
        remaining_amount=fee_structure.amount,
        status=APPLICATION_STATUS_ONBOARDING_PENDING,
        applied_at=datetime.now(timezone.utc),
    )

    if data.emi_plan_id is not None:
        plan = await get_emi_plan(db, data.emi_plan_id)
        ensure_plan_offered(plan, fee_structure)
        application.emi_plan_id = plan.id
        application.monthly_installment = monthly_installment(fee_structure.amount, plan.installments)
        application.status = APPLICATION_STATUS_EMI_PENDING

    db.add(application)
    await db.commit()

    logger.info(
        f"Parent {parent.id} created application {application.id} for student {student.id} "
        f"[status: {application.status}]"
    )
    return await load_application(db, application.id)


async def choose_emi_plan(db: AsyncSession, application_id: int, parent: User, emi_plan_id: int) -> FeeApplication:
    application = await get_application(
        db, application_id, parent, allow_admin=False, action="change this application"
    )

    if application.status not in DELETABLE_APPLICATION_STATUSES:
        raise ConflictError("EMI plan can only be chosen before the application is submitted")

    plan = await get_emi_plan(db, emi_plan_id)
    ensure_plan_offered(plan, application.fee_structure)

    application.emi_plan_id = plan.id
    application.monthly_installment = monthly_installment(application.total_amount, plan.installments)
    application.status = APPLICATION_STATUS_EMI_PENDING
    await db.commit()

    logger.info(f"Application {application.id} moved to EMI plan {plan.id}")
    return await load_application(db, application.id)


async def submit_for_review(db: AsyncSession, application_id: int, parent: User) -> FeeApplication:
    application = await get_application(
        db, application_id, parent, allow_admin=False, action="submit this application"
    )

    if application.status != APPLICATION_STATUS_EMI_PENDING:
        raise ConflictError(f"Cannot submit an application in status '{application.status}'")
    if application.emi_plan_id is None or application.monthly_installment is None:
        raise ValidationError("Choose an EMI plan before submitting")

    application.status = APPLICATION_STATUS_PLATFORM_REVIEW
    await db.commit()

    logger.info(f"Application {application.id} submitted for platform review")
    return await load_application(db, application.id)


async def list_parent_applications(db: AsyncSession, parent: User) -> List[FeeApplication]:
    """Applications of every student of the parent, newest first."""
    result = await db.execute(
        select(FeeApplication)
        .join(Student, FeeApplication.student_id == Student.id)
        .where(Student.parent_id == parent.id)
        .order_by(FeeApplication.applied_at.desc(), FeeApplication.id.desc())
    )
    return result.scalars().all()


async def list_review_applications(
    db: AsyncSession,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> dict:
    """
    Applications visible to platform admins: those with an EMI plan chosen.

    ``total`` counts every matching application, not just the returned page.
    """
    filters = [FeeApplication.emi_plan_id.is_not(None)]
    if status:
        filters.append(FeeApplication.status == status)

    result = await db.execute(
        select(FeeApplication)
        .where(*filters)
        .order_by(FeeApplication.applied_at.desc(), FeeApplication.id.desc())
        .offset(skip)
        .limit(limit)
    )
    applications = result.scalars().all()

    total_result = await db.execute(select(func.count(FeeApplication.id)).where(*filters))

    pending_result = await db.execute(
        select(func.count(FeeApplication.id)).where(FeeApplication.status == APPLICATION_STATUS_PLATFORM_REVIEW)
    )

    return {
        "applications": applications,
        "total": total_result.scalar_one(),
        "pending_review": pending_result.scalar_one(),
    }


async def delete_application(db: AsyncSession, application_id: int, parent: User) -> bool:
    """
    Delete an application that has not been submitted yet.

    The student goes too when this was their last application.

    Returns:
        True if the student record was removed as well

    Raises:
        ConflictError: If the application is past the onboarding stages
    """
    application = await get_application(
        db, application_id, parent, allow_admin=False, action="delete this application"
    )

    if application.status not in DELETABLE_APPLICATION_STATUSES:
        raise ConflictError("Cannot delete applications that are in progress or completed")

    student_id = application.student_id
    student_removed = False

    try:
        await db.execute(delete(Installment).where(Installment.fee_application_id == application.id))
        await db.execute(delete(FeeApplication).where(FeeApplication.id == application.id))

        remaining = await db.execute(
            select(func.count(FeeApplication.id)).where(FeeApplication.student_id == student_id)
        )
        if remaining.scalar_one() == 0:
            await db.execute(delete(Student).where(Student.id == student_id))
            student_removed = True

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Parent {parent.id} deleted application {application_id}"
        + (f" and student {student_id}" if student_removed else "")
    )
    return student_removed


async def institution_summary(db: AsyncSession, institution_id: int) -> dict:
    """
    Application counts and the amount collected so far for one institution.

    ``total_collected`` is what parents have repaid, ``total - remaining``
    summed over the institution's applications.
    """
    await get_institution(db, institution_id)

    result = await db.execute(
        select(
            FeeApplication.status,
            func.count(FeeApplication.id),
            func.coalesce(func.sum(FeeApplication.total_amount - FeeApplication.remaining_amount), 0),
        )
        .join(Student, FeeApplication.student_id == Student.id)
        .where(Student.institution_id == institution_id)
        .group_by(FeeApplication.status)
    )

    counts = {}
    collected = Decimal("0")
    for status, count, repaid in result.all():
        counts[status] = count
        collected += Decimal(str(repaid))

    return {
        "institution_id": institution_id,
        "total_applications": sum(counts.values()),
        "pending_approvals": counts.get(APPLICATION_STATUS_PLATFORM_REVIEW, 0),
        "active_emis": counts.get(APPLICATION_STATUS_ACTIVE, 0) + counts.get(APPLICATION_STATUS_APPROVED, 0),
        "completed": counts.get(APPLICATION_STATUS_COMPLETED, 0),
        "total_collected": to_money(collected),
    }
