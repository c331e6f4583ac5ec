from fastapi import APIRouter, Depends, status, Query, UploadFile, File
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.employees.models import EmployeeStatus
from app.modules.employees.schemas import (
    EmployeeCreate, EmployeeUpdate, EmployeeOut, EmployeeList, SalaryRun,
    SalaryRunResult, PayrollOut, SalaryPaymentOut, PayrollSummary, ImageUploadResponse
)
from app.modules.employees.service import EmployeeService
from app.modules.files.service import ImageStorage, get_image_storage

router = APIRouter(prefix="/employees", tags=["Employees"])


@router.post("/", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
def create_employee(
    employee_data: EmployeeCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.create_employee(employee_data)


@router.get("/", response_model=EmployeeList)
def list_employees(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[EmployeeStatus] = Query(None),
    search: Optional[str] = Query(None, description="Filter by name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.get_employees(limit=limit, offset=offset, status_filter=status, search=search)


@router.get("/payroll-summary", response_model=PayrollSummary)
def payroll_summary(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    """
    Totals for the current month: paid so far and still pending.
    """
    service = EmployeeService(db)
    return service.get_payroll_summary()


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.get_employee(employee_id)


@router.patch("/{employee_id}", response_model=EmployeeOut)
def update_employee(
    employee_id: UUID,
    employee_update: EmployeeUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.update_employee(employee_id, employee_update)


@router.post("/{employee_id}/salary", response_model=SalaryRunResult, status_code=status.HTTP_201_CREATED)
def process_salary(
    employee_id: UUID,
    run: SalaryRun,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin"]))
):
    service = EmployeeService(db)
    return service.process_salary(employee_id, run)


@router.get("/{employee_id}/payrolls", response_model=List[PayrollOut])
def get_payrolls(
    employee_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.get_payrolls(employee_id)


@router.get("/{employee_id}/salary-payments", response_model=List[SalaryPaymentOut])
def get_salary_payments(
    employee_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = EmployeeService(db)
    return service.get_salary_payments(employee_id)


@router.post("/{employee_id}/image", response_model=ImageUploadResponse)
def upload_profile_image(
    employee_id: UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    """
    Upload a profile picture (JPEG, PNG or WebP, up to 5MB).
    """
    service = EmployeeService(db)
    return service.upload_profile_image(employee_id, file, storage)
