from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from edufin.database import get_db
from edufin.schemas.catalog import (
    InstitutionCreate, InstitutionInDB,
    FeeStructureCreate, FeeStructureInDB,
    EmiPlanCreate, EmiPlanInDB,
    StudentCreate, StudentInDB,
    AvailableFeesResponse,
)
from edufin.models.users import User, ROLE_ADMIN, ROLE_PARENT
from edufin.middleware.authentication import get_current_user, RoleChecker
from edufin.services import catalog

router = APIRouter()

# Role-based access control
allow_catalog_management = RoleChecker([ROLE_ADMIN])
allow_parents = RoleChecker([ROLE_PARENT])


# Institution endpoints
@router.get("/institutions", response_model=List[InstitutionInDB])
async def get_institutions(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get all institutions.
    """
    return await catalog.list_institutions(db, skip=skip, limit=limit)


@router.post("/admin/institutions", response_model=InstitutionInDB, status_code=status.HTTP_201_CREATED)
async def create_institution(
    institution_data: InstitutionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_catalog_management)
):
    """
    Create a new institution.
    """
    return await catalog.create_institution(db, institution_data)


# Fee structure endpoints
@router.get("/institutions/{institution_id}/fee-structures", response_model=List[FeeStructureInDB])
async def get_institution_fee_structures(
    institution_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get the fee structures of an institution.
    """
    await catalog.get_institution(db, institution_id)
    return await catalog.list_fee_structures(db, [institution_id])


@router.get("/fee-structures/{fee_structure_id}", response_model=FeeStructureInDB)
async def get_fee_structure(
    fee_structure_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await catalog.get_fee_structure(db, fee_structure_id)


@router.get("/fee-structures/{fee_structure_id}/emi-plans", response_model=List[EmiPlanInDB])
async def get_fee_structure_emi_plans(
    fee_structure_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get the active EMI plans offered for a fee structure.
    """
    fee_structure = await catalog.get_fee_structure(db, fee_structure_id)
    return await catalog.list_emi_plans(db, [fee_structure.id])


@router.post("/admin/fee-structures", response_model=FeeStructureInDB, status_code=status.HTTP_201_CREATED)
async def create_fee_structure(
    fee_structure_data: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_catalog_management)
):
    """
    Create a new fee structure. Fee structures cannot be edited afterwards.
    """
    return await catalog.create_fee_structure(db, fee_structure_data)


@router.post("/admin/emi-plans", response_model=EmiPlanInDB, status_code=status.HTTP_201_CREATED)
async def create_emi_plan(
    emi_plan_data: EmiPlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_catalog_management)
):
    """
    Create a new EMI plan, for one fee structure or (without one) for all.
    """
    return await catalog.create_emi_plan(db, emi_plan_data)


@router.get("/fees/available", response_model=AvailableFeesResponse)
async def get_available_fees(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    """
    Get the fee structures and EMI plans the current parent can apply for.
    """
    return await catalog.available_fees(db, current_user)


# Student endpoints
@router.post("/students", response_model=StudentInDB, status_code=status.HTTP_201_CREATED)
async def register_student(
    student_data: StudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    """
    Register a student under the current parent.
    """
    return await catalog.register_student(db, current_user, student_data)


@router.get("/students", response_model=List[StudentInDB])
async def get_my_students(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_parents)
):
    return await catalog.list_students(db, current_user)
