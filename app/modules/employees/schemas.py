from pydantic import BaseModel, Field, EmailStr, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.common.validators import validate_phone, normalize_phone
from app.modules.employees.models import EmployeeStatus, PaymentFrequency, SalaryRunType


def _clean_phone(v):
    if v is None or v.strip() == "":
        return None
    if not validate_phone(v):
        raise ValueError("Invalid phone number: use 6 to 15 digits, optionally prefixed by +")
    return normalize_phone(v)


class SalaryStructure(BaseModel):
    basic_salary: Decimal = Field(Decimal("0"), ge=0)
    allowances: Decimal = Field(Decimal("0"), ge=0)
    deductions: Decimal = Field(Decimal("0"), ge=0)
    bonuses: Decimal = Field(Decimal("0"), ge=0)
    overtime: Decimal = Field(Decimal("0"), ge=0)


class TaxDeductions(BaseModel):
    income_tax: Decimal = Field(Decimal("0"), ge=0)
    provident_fund: Decimal = Field(Decimal("0"), ge=0)
    insurance: Decimal = Field(Decimal("0"), ge=0)
    other_deductions: Decimal = Field(Decimal("0"), ge=0)


class EmployeeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    position: Optional[str] = Field(None, max_length=100)
    hire_date: Optional[date] = None
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return _clean_phone(v)


class EmployeeCreate(EmployeeBase):
    salary_structure: SalaryStructure = SalaryStructure()
    tax_deductions: TaxDeductions = TaxDeductions()


class EmployeeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    position: Optional[str] = Field(None, max_length=100)
    hire_date: Optional[date] = None
    status: Optional[EmployeeStatus] = None
    payment_frequency: Optional[PaymentFrequency] = None
    salary_structure: Optional[SalaryStructure] = None
    tax_deductions: Optional[TaxDeductions] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return _clean_phone(v)


class EmployeeOut(EmployeeBase):
    id: UUID
    status: EmployeeStatus
    salary: Decimal
    salary_structure: Optional[SalaryStructure]
    tax_deductions: Optional[TaxDeductions]
    profile_image: Optional[str]
    last_salary_payment: Optional[date]
    last_automated_salary_date: Optional[date]
    created_at: datetime

    class Config:
        from_attributes = True


class EmployeeList(BaseModel):
    employees: List[EmployeeOut]
    total: int
    limit: int
    offset: int


class SalaryRun(BaseModel):
    payment_date: date = Field(default_factory=date.today)
    automated: bool = False
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PayrollOut(BaseModel):
    id: UUID
    employee_id: UUID
    payment_date: date
    gross_amount: Decimal
    net_amount: Decimal
    payment_frequency: str
    status: str
    payment_type: SalaryRunType
    created_at: datetime

    class Config:
        from_attributes = True


class SalaryPaymentOut(BaseModel):
    id: UUID
    employee_id: UUID
    amount: Decimal
    payment_date: date
    payment_method: str
    payment_type: SalaryRunType
    status: str
    reference_number: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class SalaryRunResult(BaseModel):
    payroll: PayrollOut
    payment: SalaryPaymentOut
    employee: EmployeeOut


class PayrollSummary(BaseModel):
    total_monthly_salary: Decimal
    paid_this_month: Decimal
    pending_amount: Decimal
    active_employees: int
    pending_employees: List[UUID]


class ImageUploadResponse(BaseModel):
    employee_id: UUID
    profile_image: str
