import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edufin.config import settings
from edufin.exceptions import ConflictError, NotFoundError
from edufin.models.finance import (
    FeeApplication, Installment, Payment,
    APPLICATION_STATUS_APPROVED, APPLICATION_STATUS_ACTIVE, APPLICATION_STATUS_COMPLETED,
    INSTALLMENT_STATUS_PAID, INSTALLMENT_STATUS_PENDING, INSTALLMENT_STATUS_OVERDUE,
    PAYMENT_STATUS_COMPLETED, PAYMENT_TYPE_EMI, PAYMENT_TYPE_INSTITUTION,
    PAYMENT_TYPE_PLATFORM_TO_INSTITUTION, PAYABLE_APPLICATION_STATUSES,
)
from edufin.models.institutions import Institution
from edufin.models.users import User, Student
from edufin.services.applications import load_application, get_application
from edufin.services.authorization import authorize, require_admin
from edufin.services.schedule import (
    add_installments, ceil_installment, count_installments, schedule_for_application, to_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def generate_transaction_id(prefix: Optional[str] = None) -> str:
    """Unique transaction reference, e.g. ``EMI-20260119093000-3F9A1C``."""
    prefix = prefix or settings.TRANSACTION_PREFIX
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{timestamp}-{uuid.uuid4().hex[:6].upper()}"


def settle_balance(remaining_amount: Decimal, paid_amount: Decimal) -> tuple:
    """
    New remaining amount and application status after a payment.

    Returns:
        (remaining amount quantized to cents, "completed" or "active")
    """
    remaining = to_money(Decimal(remaining_amount) - Decimal(paid_amount))
    if remaining <= 0:
        return ZERO, APPLICATION_STATUS_COMPLETED
    return remaining, APPLICATION_STATUS_ACTIVE


async def get_installment(db: AsyncSession, installment_id: int) -> Installment:
    result = await db.execute(select(Installment).where(Installment.id == installment_id))
    installment = result.scalars().first()
    if not installment:
        raise NotFoundError("Installment not found")
    return installment


async def pay_installment(db: AsyncSession, installment_id: int, user: User) -> dict:
    """
    Record a payment for an installment and settle it.

    Only the parent of the owning student can pay. Inside one transaction the
    installment is flipped to paid with a conditional update (so two
    concurrent requests cannot both settle it), a completed Payment is
    recorded and linked, and the application's remaining amount is
    decremented under a row lock.

    Args:
        db: Database session
        installment_id: The installment to pay
        user: The paying parent

    Returns:
        Receipt dict with the transaction id and the new remaining amount

    Raises:
        NotFoundError: If the installment does not exist
        ForbiddenError: If the user is not the student's parent
        ConflictError: If the installment is already paid, or the application is
            not approved or active
    """
    installment = await get_installment(db, installment_id)
    application = await load_application(db, installment.fee_application_id)
    authorize(user, application.student, allow_admin=False, action="pay this installment")

    if installment.status == INSTALLMENT_STATUS_PAID:
        raise ConflictError("Installment already paid")
    if application.status not in PAYABLE_APPLICATION_STATUSES:
        raise ConflictError(f"Cannot pay installments of an application in status '{application.status}'")

    now = datetime.now(timezone.utc)
    transaction_id = generate_transaction_id()

    try:
        claimed = await db.execute(
            update(Installment)
            .where(Installment.id == installment.id, Installment.status != INSTALLMENT_STATUS_PAID)
            .values(status=INSTALLMENT_STATUS_PAID, paid_date=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise ConflictError("Installment already paid")

        payment = Payment(
            amount=installment.amount,
            status=PAYMENT_STATUS_COMPLETED,
            payment_type=PAYMENT_TYPE_EMI,
            payment_method=settings.PAYMENT_METHOD,
            payment_gateway=settings.PAYMENT_GATEWAY,
            transaction_id=transaction_id,
            user_id=user.id,
            fee_application_id=application.id,
            institution_id=application.student.institution_id,
            installment_id=installment.id,
            notes=f"EMI payment for installment #{installment.installment_number}",
        )
        db.add(payment)
        await db.flush()

        await db.execute(
            update(Installment)
            .where(Installment.id == installment.id)
            .values(payment_id=payment.id)
            .execution_options(synchronize_session=False)
        )

        locked = await db.execute(
            select(FeeApplication)
            .where(FeeApplication.id == application.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        application = locked.scalars().one()

        remaining, status = settle_balance(application.remaining_amount, installment.amount)
        application.remaining_amount = remaining
        application.status = status

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"User {user.id} paid installment {installment.id} (#{installment.installment_number}) "
        f"of application {application.id} [amount: {installment.amount}] [remaining: {remaining}] "
        f"[transaction: {transaction_id}]"
    )

    return {
        "payment_id": payment.id,
        "transaction_id": transaction_id,
        "installment_id": installment.id,
        "installment_number": installment.installment_number,
        "amount": installment.amount,
        "remaining_amount": f"{remaining:.2f}",
        "application_status": status,
        "message": "EMI payment successful",
    }


async def initiate_payment(db: AsyncSession, application_id: int, user: User) -> dict:
    """
    Settle an approved application with its institution and start the EMI schedule.

    The parent's full payment to the platform and the platform's transfer to
    the institution are recorded as two payments. The schedule is generated
    with installments rounded up to whole currency units unless approval
    already generated one. The application becomes active.

    Raises:
        ForbiddenError: If the user is not the student's parent
        ConflictError: If the application is not approved
    """
    application = await get_application(
        db, application_id, user, allow_admin=False, action="pay for this application"
    )

    if application.status != APPLICATION_STATUS_APPROVED:
        raise ConflictError(f"Cannot initiate payment for an application in status '{application.status}'")

    now = datetime.now(timezone.utc)
    institution_id = application.student.institution_id
    count = application.emi_plan.installments if application.emi_plan else settings.DEFAULT_EMI_INSTALLMENTS

    transaction_id = generate_transaction_id("TXN")
    platform_transaction_id = generate_transaction_id("PLTF")

    try:
        parent_payment = Payment(
            amount=application.total_amount,
            status=PAYMENT_STATUS_COMPLETED,
            payment_type=PAYMENT_TYPE_INSTITUTION,
            payment_method=settings.PAYMENT_METHOD,
            payment_gateway=settings.PAYMENT_GATEWAY,
            transaction_id=transaction_id,
            user_id=user.id,
            fee_application_id=application.id,
            institution_id=institution_id,
            notes="Parent paid full amount to platform",
        )
        platform_payment = Payment(
            amount=application.total_amount,
            status=PAYMENT_STATUS_COMPLETED,
            payment_type=PAYMENT_TYPE_PLATFORM_TO_INSTITUTION,
            payment_method="bank_transfer",
            payment_gateway=settings.PAYMENT_GATEWAY,
            transaction_id=platform_transaction_id,
            fee_application_id=application.id,
            institution_id=institution_id,
            notes="Platform paid full amount to institution",
        )
        db.add_all([parent_payment, platform_payment])

        existing = await count_installments(db, application.id)
        if existing > 0:
            logger.info(f"Application {application.id} already has {existing} installments, keeping them")
            installments = existing
        else:
            schedule = schedule_for_application(
                application,
                now=now,
                installment_amount=ceil_installment(application.total_amount, count),
                count=count,
            )
            add_installments(db, application, schedule)
            installments = len(schedule)

        application.platform_paid_to_institution = True
        application.institution_payment_date = now
        application.status = APPLICATION_STATUS_ACTIVE

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Initiated payment for application {application.id} "
        f"[amount: {application.total_amount}] [installments: {installments}]"
    )

    return {
        "application_id": application.id,
        "parent_payment_id": parent_payment.id,
        "platform_payment_id": platform_payment.id,
        "transaction_id": transaction_id,
        "platform_transaction_id": platform_transaction_id,
        "installments": installments,
        "total_amount": application.total_amount,
        "status": application.status,
    }


async def mark_overdue_installments(db: AsyncSession, admin: User, now: Optional[datetime] = None) -> int:
    """Flip pending installments past their due date to overdue. Returns the number flipped."""
    require_admin(admin, action="mark installments overdue")
    now = now or datetime.now(timezone.utc)

    try:
        result = await db.execute(
            update(Installment)
            .where(Installment.status == INSTALLMENT_STATUS_PENDING, Installment.due_date < now)
            .values(status=INSTALLMENT_STATUS_OVERDUE)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Marked {result.rowcount} installments overdue")
    return result.rowcount


async def list_installments(db: AsyncSession, application_id: int, user: User) -> dict:
    """Installments of an application with a paid/pending/overdue summary."""
    application = await get_application(db, application_id, user, action="view these installments")

    result = await db.execute(
        select(Installment)
        .where(Installment.fee_application_id == application.id)
        .order_by(Installment.installment_number)
        .execution_options(populate_existing=True)
    )
    installments = result.scalars().all()

    return {
        "installments": installments,
        "summary": summarize_installments(installments),
    }


def summarize_installments(installments: List[Installment]) -> dict:
    paid = [item for item in installments if item.status == INSTALLMENT_STATUS_PAID]
    return {
        "total": len(installments),
        "paid": len(paid),
        "pending": sum(1 for item in installments if item.status == INSTALLMENT_STATUS_PENDING),
        "overdue": sum(1 for item in installments if item.status == INSTALLMENT_STATUS_OVERDUE),
        "total_amount": sum((item.amount for item in installments), ZERO),
        "paid_amount": sum((item.amount for item in paid), ZERO),
    }


async def list_payments(db: AsyncSession, application_id: int, user: User) -> List[Payment]:
    application = await get_application(db, application_id, user, action="view these payments")
    result = await db.execute(
        select(Payment)
        .where(Payment.fee_application_id == application.id)
        .order_by(Payment.created_at, Payment.id)
    )
    return result.scalars().all()


async def list_transactions(db: AsyncSession, parent: User) -> List[dict]:
    """Installments across all of the parent's students, by due date."""
    result = await db.execute(
        select(Installment, FeeApplication, Student, Institution)
        .join(FeeApplication, Installment.fee_application_id == FeeApplication.id)
        .join(Student, FeeApplication.student_id == Student.id)
        .join(Institution, Student.institution_id == Institution.id)
        .where(Student.parent_id == parent.id)
        .order_by(Installment.due_date, Installment.installment_number)
    )

    transactions = []
    for installment, application, student, institution in result.all():
        transactions.append({
            "installment_id": installment.id,
            "application_id": application.id,
            "installment_number": installment.installment_number,
            "amount": installment.amount,
            "status": installment.status,
            "due_date": installment.due_date,
            "paid_date": installment.paid_date,
            "payment_id": installment.payment_id,
            "student_name": student.name,
            "institution_name": institution.name,
            "description": f"EMI Payment {installment.installment_number} - {institution.name}",
        })
    return transactions
