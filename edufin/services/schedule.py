"""
Installment schedule generation.

The arithmetic (``monthly_installment``, ``ceil_installment``,
``build_schedule``) is pure so it can be reasoned about without a database;
``generate_installments`` persists a schedule for an application.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edufin.exceptions import ConflictError, ValidationError
from edufin.models.finance import FeeApplication, Installment, INSTALLMENT_STATUS_PENDING

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_number: int
    amount: Decimal
    due_date: datetime


def to_money(value) -> Decimal:
    """Quantize a value to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_installment(total_amount: Decimal, count: int) -> Decimal:
    """Equal share of ``total_amount`` over ``count`` installments, rounded down to cents."""
    if count <= 0:
        raise ValidationError("Installment count must be positive")
    return (Decimal(total_amount) / count).quantize(CENT, rounding=ROUND_DOWN)


def ceil_installment(total_amount: Decimal, count: int) -> Decimal:
    """Equal share of ``total_amount`` rounded up to a whole currency unit."""
    if count <= 0:
        raise ValidationError("Installment count must be positive")
    share = (Decimal(total_amount) / count).to_integral_value(rounding=ROUND_CEILING)
    return to_money(share)


def first_of_month_after(base: datetime, months: int) -> datetime:
    """First day of the month ``months`` months after ``base``, at midnight."""
    year, month_index = divmod(base.month - 1 + months, 12)
    return base.replace(
        year=base.year + year,
        month=month_index + 1,
        day=1,
        hour=0,
        minute=0,
        second=0,
        microsecond=0,
    )


def build_schedule(
    total_amount: Decimal,
    count: int,
    base_date: datetime,
    installment_amount: Optional[Decimal] = None,
) -> List[ScheduledInstallment]:
    """
    Split ``total_amount`` into ``count`` monthly installments.

    Every installment but the last is ``installment_amount`` (an equal
    share rounded down to cents by default); the last one absorbs the
    rounding remainder so the amounts add up to ``total_amount`` exactly.
    Installment ``i`` is due on the first day of the month ``i`` months
    after ``base_date``.

    Args:
        total_amount: Amount to be repaid
        count: Number of installments
        base_date: Approval time, or the current time for unapproved applications
        installment_amount: Amount of every installment but the last

    Returns:
        The installments in order, numbered from 1

    Raises:
        ValidationError: If the inputs cannot produce a positive schedule
    """
    total = to_money(total_amount)
    if total <= 0:
        raise ValidationError("Total amount must be positive")
    if count <= 0:
        raise ValidationError("Installment count must be positive")

    regular = to_money(installment_amount) if installment_amount is not None else monthly_installment(total, count)
    if regular <= 0:
        raise ValidationError("Installment amount must be positive")

    last = total - regular * (count - 1)
    if last <= 0:
        raise ValidationError(
            f"An installment of {regular} over {count} installments exceeds the total amount {total}"
        )

    schedule = []
    for number in range(1, count + 1):
        schedule.append(
            ScheduledInstallment(
                installment_number=number,
                amount=last if number == count else regular,
                due_date=first_of_month_after(base_date, number),
            )
        )
    return schedule


async def count_installments(db: AsyncSession, application_id: int) -> int:
    result = await db.execute(
        select(func.count(Installment.id)).where(Installment.fee_application_id == application_id)
    )
    return result.scalar_one()


def schedule_for_application(
    application: FeeApplication,
    now: Optional[datetime] = None,
    installment_amount: Optional[Decimal] = None,
    count: Optional[int] = None,
) -> List[ScheduledInstallment]:
    """
    Build the schedule of an application from its plan and monthly installment.

    ``count`` and ``installment_amount`` override the plan, for flows that
    schedule without one.
    """
    if count is None:
        if application.emi_plan is None or application.monthly_installment is None:
            raise ValidationError("Application does not have EMI plan or monthly installment")
        count = application.emi_plan.installments
    if installment_amount is None:
        installment_amount = application.monthly_installment

    base_date = application.approved_at or now or datetime.now(timezone.utc)
    return build_schedule(application.total_amount, count, base_date, installment_amount)


def add_installments(db: AsyncSession, application: FeeApplication, schedule: List[ScheduledInstallment]) -> None:
    """Stage the rows of ``schedule`` on the session. The caller commits."""
    db.add_all([
        Installment(
            fee_application_id=application.id,
            installment_number=item.installment_number,
            amount=item.amount,
            due_date=item.due_date,
            status=INSTALLMENT_STATUS_PENDING,
        )
        for item in schedule
    ])


async def generate_installments(db: AsyncSession, application: FeeApplication) -> int:
    """
    Generate and persist the installment schedule of an application.

    Args:
        db: Database session
        application: The application to schedule

    Returns:
        Number of installments created

    Raises:
        ValidationError: If the application has no EMI plan or monthly installment
        ConflictError: If installments already exist for the application
    """
    schedule = schedule_for_application(application)

    existing = await count_installments(db, application.id)
    if existing > 0:
        raise ConflictError(f"Installments already exist for this application ({existing})")

    try:
        add_installments(db, application, schedule)
        await db.commit()
    except IntegrityError:
        # A concurrent request inserted the schedule first
        await db.rollback()
        raise ConflictError("Installments already exist for this application")
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Generated {len(schedule)} installments for application {application.id}")
    return len(schedule)
