import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from edufin.exceptions import ConflictError, ValidationError
from edufin.models.finance import (
    APPLICATION_STATUS_APPROVED, APPLICATION_STATUS_REJECTED,
    REVIEWABLE_APPLICATION_STATUSES, SCHEDULABLE_APPLICATION_STATUSES,
)
from edufin.models.users import User
from edufin.services.applications import load_application
from edufin.services.authorization import require_admin
from edufin.services.schedule import (
    add_installments, count_installments, generate_installments, schedule_for_application,
)

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = ("approve", "reject")


async def review_application(db: AsyncSession, application_id: int, admin: User, action: str) -> dict:
    """
    Approve or reject an application submitted for review.

    Approval stamps ``approved_at`` and generates the installment schedule in
    the same transaction. When installments already exist the approval still
    goes through and generation is skipped.

    Args:
        db: Database session
        application_id: The application to review
        admin: The reviewing user, who must be an admin
        action: "approve" or "reject"

    Returns:
        Dict with the new status and the number of installments generated

    Raises:
        ForbiddenError: If the user is not an admin
        ValidationError: If the action is unknown, or approving without an EMI plan
        NotFoundError: If the application does not exist
        ConflictError: If the application is not awaiting review
    """
    require_admin(admin, action="review applications")

    if action not in REVIEW_ACTIONS:
        raise ValidationError("Invalid action")

    application = await load_application(db, application_id)

    if application.status not in REVIEWABLE_APPLICATION_STATUSES:
        raise ConflictError(f"Cannot {action} an application in status '{application.status}'")

    now = datetime.now(timezone.utc)
    generated = 0

    try:
        if action == "approve":
            if application.emi_plan_id is None or application.monthly_installment is None:
                raise ValidationError("Application does not have EMI plan or monthly installment")

            application.status = APPLICATION_STATUS_APPROVED
            application.approved_at = now
            application.approved_by = admin.id

            existing = await count_installments(db, application.id)
            if existing > 0:
                logger.warning(
                    f"Application {application.id} already has {existing} installments, "
                    f"skipping schedule generation"
                )
            else:
                schedule = schedule_for_application(application)
                add_installments(db, application, schedule)
                generated = len(schedule)
        else:
            application.status = APPLICATION_STATUS_REJECTED
            application.rejected_at = now

        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Installments already exist for this application")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Admin {admin.id} {action}d application {application.id} "
        f"[installments generated: {generated}]"
    )
    return {
        "application_id": application.id,
        "status": application.status,
        "installments_generated": generated,
        "message": f"Application {action}d successfully",
    }


async def generate_schedule(db: AsyncSession, application_id: int, admin: User) -> int:
    """Admin-triggered schedule generation for an application that has none."""
    require_admin(admin, action="generate installments")
    application = await load_application(db, application_id)

    if application.status not in SCHEDULABLE_APPLICATION_STATUSES:
        raise ConflictError(
            f"Cannot generate installments for an application in status '{application.status}'"
        )

    return await generate_installments(db, application)
