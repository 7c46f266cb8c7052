import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edufin.exceptions import ConflictError, NotFoundError, ValidationError
from edufin.models.institutions import Institution, FeeStructure, EmiPlan
from edufin.models.users import User, Student
from edufin.schemas.catalog import InstitutionCreate, FeeStructureCreate, EmiPlanCreate, StudentCreate

logger = logging.getLogger(__name__)


async def get_institution(db: AsyncSession, institution_id: int) -> Institution:
    result = await db.execute(select(Institution).where(Institution.id == institution_id))
    institution = result.scalars().first()
    if not institution:
        raise NotFoundError("Institution not found")
    return institution


async def list_institutions(db: AsyncSession, skip: int = 0, limit: int = 100) -> List[Institution]:
    result = await db.execute(select(Institution).order_by(Institution.name).offset(skip).limit(limit))
    return result.scalars().all()


async def create_institution(db: AsyncSession, data: InstitutionCreate) -> Institution:
    existing = await db.execute(select(Institution).where(Institution.name == data.name))
    if existing.scalars().first():
        raise ConflictError("Institution with this name already exists")

    institution = Institution(**data.model_dump())
    db.add(institution)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Institution with this name already exists")
    await db.refresh(institution)

    logger.info(f"Created institution {institution.id} ({institution.name})")
    return institution


async def get_fee_structure(db: AsyncSession, fee_structure_id: int) -> FeeStructure:
    result = await db.execute(select(FeeStructure).where(FeeStructure.id == fee_structure_id))
    fee_structure = result.scalars().first()
    if not fee_structure:
        raise NotFoundError("Fee structure not found")
    return fee_structure


async def list_fee_structures(db: AsyncSession, institution_ids: List[int]) -> List[FeeStructure]:
    if not institution_ids:
        return []
    result = await db.execute(
        select(FeeStructure)
        .where(FeeStructure.institution_id.in_(institution_ids))
        .order_by(FeeStructure.created_at.desc(), FeeStructure.id.desc())
    )
    return result.scalars().all()


async def create_fee_structure(db: AsyncSession, data: FeeStructureCreate) -> FeeStructure:
    await get_institution(db, data.institution_id)

    fee_structure = FeeStructure(**data.model_dump())
    db.add(fee_structure)
    await db.commit()
    await db.refresh(fee_structure)

    logger.info(f"Created fee structure {fee_structure.id} for institution {fee_structure.institution_id}")
    return fee_structure


async def get_emi_plan(db: AsyncSession, emi_plan_id: int) -> EmiPlan:
    result = await db.execute(select(EmiPlan).where(EmiPlan.id == emi_plan_id))
    plan = result.scalars().first()
    if not plan:
        raise NotFoundError("EMI plan not found")
    return plan


async def list_emi_plans(db: AsyncSession, fee_structure_ids: Optional[List[int]] = None) -> List[EmiPlan]:
    """
    Active EMI plans, shortest first.

    Plans without a fee structure are offered for every fee; when
    ``fee_structure_ids`` is given, plans tied to other fee structures are
    left out.
    """
    query = select(EmiPlan).where(EmiPlan.is_active == True)
    if fee_structure_ids is not None:
        query = query.where(
            or_(EmiPlan.fee_structure_id.is_(None), EmiPlan.fee_structure_id.in_(fee_structure_ids))
        )
    result = await db.execute(query.order_by(EmiPlan.installments, EmiPlan.id))
    return result.scalars().all()


async def create_emi_plan(db: AsyncSession, data: EmiPlanCreate) -> EmiPlan:
    if data.fee_structure_id is not None:
        await get_fee_structure(db, data.fee_structure_id)

    plan = EmiPlan(**data.model_dump())
    db.add(plan)
    await db.commit()
    await db.refresh(plan)

    logger.info(f"Created EMI plan {plan.id} ({plan.installments} installments)")
    return plan


def ensure_plan_offered(plan: EmiPlan, fee_structure: FeeStructure) -> None:
    """Raise ValidationError unless ``plan`` can be chosen for ``fee_structure``."""
    if not plan.is_active:
        raise ValidationError("EMI plan is not active")
    if plan.fee_structure_id is not None and plan.fee_structure_id != fee_structure.id:
        raise ValidationError("EMI plan is not offered for this fee structure")


async def register_student(db: AsyncSession, parent: User, data: StudentCreate) -> Student:
    await get_institution(db, data.institution_id)

    student = Student(parent_id=parent.id, **data.model_dump())
    db.add(student)
    await db.commit()
    await db.refresh(student)

    logger.info(f"Parent {parent.id} registered student {student.id} at institution {student.institution_id}")
    return student


async def list_students(db: AsyncSession, parent: User) -> List[Student]:
    result = await db.execute(
        select(Student).where(Student.parent_id == parent.id).order_by(Student.id)
    )
    return result.scalars().all()


async def available_fees(db: AsyncSession, parent: User) -> dict:
    """
    Fee structures and plans a parent can apply for, across all of their
    students' institutions.
    """
    students = await list_students(db, parent)
    institution_ids = sorted({student.institution_id for student in students})
    fee_structures = await list_fee_structures(db, institution_ids)
    emi_plans = await list_emi_plans(db, [fee.id for fee in fee_structures]) if fee_structures else []

    return {
        "students": students,
        "fee_structures": fee_structures,
        "emi_plans": emi_plans,
    }
