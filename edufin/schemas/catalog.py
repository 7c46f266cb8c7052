from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, condecimal
from enum import Enum


class InstitutionTypeEnum(str, Enum):
    school = "school"
    college = "college"


# Institution schemas
class InstitutionBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: InstitutionTypeEnum = InstitutionTypeEnum.school
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class InstitutionCreate(InstitutionBase):
    pass


class InstitutionInDB(InstitutionBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Fee structure schemas
class FeeStructureBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    amount: condecimal(max_digits=12, decimal_places=2, gt=0)
    due_date: Optional[datetime] = None
    academic_year: str
    semester: Optional[str] = None
    is_recurring: bool = False


class FeeStructureCreate(FeeStructureBase):
    institution_id: int


class FeeStructureInDB(FeeStructureBase):
    id: int
    institution_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# EMI plan schemas
class EmiPlanBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    installments: int = Field(..., gt=0, le=120)
    interest_rate: condecimal(max_digits=5, decimal_places=2, ge=0) = Decimal("0.00")
    processing_fee: condecimal(max_digits=12, decimal_places=2, ge=0) = Decimal("0.00")


class EmiPlanCreate(EmiPlanBase):
    fee_structure_id: Optional[int] = None
    is_active: bool = True


class EmiPlanInDB(EmiPlanBase):
    id: int
    fee_structure_id: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True


# Student schemas
class StudentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    roll_number: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    admission_date: Optional[datetime] = None


class StudentCreate(StudentBase):
    institution_id: int


class StudentInDB(StudentBase):
    id: int
    parent_id: int
    institution_id: int
    is_active: Optional[bool] = None

    class Config:
        from_attributes = True


# What a parent can apply for
class AvailableFeesResponse(BaseModel):
    students: List[StudentInDB]
    fee_structures: List[FeeStructureInDB]
    emi_plans: List[EmiPlanInDB]
