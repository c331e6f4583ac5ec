from fastapi import HTTPException, UploadFile, status
from sqlalchemy.orm import Session
from sqlalchemy import desc
from decimal import Decimal
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from app.common.validators import escape_like
from app.modules.employees.models import (
    Employee, Payroll, SalaryPayment, EmployeeStatus, SalaryRunType
)
from app.modules.employees.schemas import (
    EmployeeCreate, EmployeeUpdate, EmployeeList, SalaryStructure, TaxDeductions,
    SalaryRun, SalaryRunResult, PayrollOut, SalaryPaymentOut, EmployeeOut,
    PayrollSummary, ImageUploadResponse
)
from app.modules.files.service import ImageStorage
from app.modules.invoices.calculator import money

logger = logging.getLogger(__name__)


def salary_breakdown(structure: SalaryStructure, taxes: TaxDeductions) -> Tuple[Decimal, Decimal]:
    """
    Gross and net salary

    Args:
        structure: Earnings and in-house deductions
        taxes: Statutory deductions

    Returns:
        (gross, net) rounded to cents
    """
    gross = structure.basic_salary + structure.allowances + structure.bonuses + structure.overtime
    deductions = (
        structure.deductions
        + taxes.income_tax
        + taxes.provident_fund
        + taxes.insurance
        + taxes.other_deductions
    )
    return money(gross), money(gross - deductions)


def _same_month(a: Optional[date], b: date) -> bool:
    return a is not None and a.year == b.year and a.month == b.month


class EmployeeService:
    """Staff records and salary processing"""

    def __init__(self, db: Session):
        self.db = db

    def create_employee(self, employee_data: EmployeeCreate) -> Employee:
        data = employee_data.model_dump(exclude={"salary_structure", "tax_deductions"})
        employee = Employee(**data, status=EmployeeStatus.ACTIVE)
        self._set_salary(employee, employee_data.salary_structure, employee_data.tax_deductions)

        self.db.add(employee)
        self.db.commit()
        self.db.refresh(employee)
        logger.info(f"Employee {employee.id} created")
        return employee

    def get_employee(self, employee_id: UUID) -> Employee:
        employee = self.db.query(Employee).filter(Employee.id == employee_id).first()
        if not employee:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Employee not found"
            )
        return employee

    def get_employees(
        self,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[EmployeeStatus] = None,
        search: Optional[str] = None
    ) -> EmployeeList:
        query = self.db.query(Employee)
        if status_filter:
            query = query.filter(Employee.status == status_filter)
        if search:
            query = query.filter(Employee.name.ilike(f"%{escape_like(search)}%", escape="\\"))

        total = query.count()
        employees = query.order_by(Employee.name).offset(offset).limit(limit).all()
        return EmployeeList(employees=employees, total=total, limit=limit, offset=offset)

    def update_employee(self, employee_id: UUID, employee_update: EmployeeUpdate) -> Employee:
        employee = self.get_employee(employee_id)
        changes = employee_update.model_dump(exclude_unset=True, exclude={"salary_structure", "tax_deductions"})
        for field, value in changes.items():
            setattr(employee, field, value)

        if employee_update.salary_structure is not None or employee_update.tax_deductions is not None:
            self._set_salary(
                employee,
                employee_update.salary_structure or self._structure_of(employee),
                employee_update.tax_deductions or self._taxes_of(employee)
            )

        self.db.commit()
        self.db.refresh(employee)
        return employee

    def process_salary(self, employee_id: UUID, run: SalaryRun) -> SalaryRunResult:
        """
        Pay an employee: snapshot the computation in a payroll row, record
        the bank transfer and stamp the payment dates.

        An automated run can happen once per calendar month.
        """
        employee = self.get_employee(employee_id)
        if employee.status != EmployeeStatus.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only active employees can be paid"
            )
        if run.automated and _same_month(employee.last_automated_salary_date, run.payment_date):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Automated salary has already been processed this month"
            )

        structure = self._structure_of(employee)
        taxes = self._taxes_of(employee)
        gross, net = salary_breakdown(structure, taxes)
        run_type = SalaryRunType.AUTOMATED if run.automated else SalaryRunType.MANUAL

        try:
            payroll = Payroll(
                employee_id=employee.id,
                payment_date=run.payment_date,
                gross_amount=gross,
                net_amount=net,
                payment_frequency=employee.payment_frequency.value,
                salary_structure=structure.model_dump(mode="json"),
                tax_deductions=taxes.model_dump(mode="json"),
                status="paid",
                payment_type=run_type
            )
            payment = SalaryPayment(
                employee_id=employee.id,
                amount=net,
                payment_date=run.payment_date,
                payment_method="bank_transfer",
                payment_type=run_type,
                status="completed",
                reference_number=run.reference_number,
                notes=run.notes
            )
            self.db.add_all([payroll, payment])

            employee.last_salary_payment = run.payment_date
            if run.automated:
                employee.last_automated_salary_date = run.payment_date

            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error processing salary for employee {employee_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error processing salary: {str(e)}"
            )

        self.db.refresh(payroll)
        self.db.refresh(payment)
        self.db.refresh(employee)
        logger.info(f"Salary of {net} paid to employee {employee.id} ({run_type.value})")

        return SalaryRunResult(
            payroll=PayrollOut.model_validate(payroll),
            payment=SalaryPaymentOut.model_validate(payment),
            employee=EmployeeOut.model_validate(employee)
        )

    def get_payrolls(self, employee_id: UUID) -> List[Payroll]:
        self.get_employee(employee_id)
        return (
            self.db.query(Payroll)
            .filter(Payroll.employee_id == employee_id)
            .order_by(desc(Payroll.payment_date), desc(Payroll.created_at))
            .all()
        )

    def get_salary_payments(self, employee_id: UUID) -> List[SalaryPayment]:
        self.get_employee(employee_id)
        return (
            self.db.query(SalaryPayment)
            .filter(SalaryPayment.employee_id == employee_id)
            .order_by(desc(SalaryPayment.payment_date), desc(SalaryPayment.created_at))
            .all()
        )

    def get_payroll_summary(self, today: Optional[date] = None) -> PayrollSummary:
        """
        Monthly payroll figures: active employees not paid yet this month
        are pending.
        """
        today = today or date.today()
        month_start = today.replace(day=1)
        active = self.db.query(Employee).filter(Employee.status == EmployeeStatus.ACTIVE).all()

        paid_ids = {
            row[0] for row in
            self.db.query(SalaryPayment.employee_id)
            .filter(SalaryPayment.payment_date >= month_start, SalaryPayment.payment_date <= today)
            .distinct()
            .all()
        }

        total = sum((Decimal(e.salary or 0) for e in active), Decimal("0"))
        pending = [e for e in active if e.id not in paid_ids]
        pending_amount = sum((Decimal(e.salary or 0) for e in pending), Decimal("0"))

        return PayrollSummary(
            total_monthly_salary=money(total),
            paid_this_month=money(total - pending_amount),
            pending_amount=money(pending_amount),
            active_employees=len(active),
            pending_employees=[e.id for e in pending]
        )

    def upload_profile_image(
        self,
        employee_id: UUID,
        file: UploadFile,
        storage: ImageStorage
    ) -> ImageUploadResponse:
        employee = self.get_employee(employee_id)
        previous = employee.profile_image

        url = storage.upload_employee_image(employee.id, file)
        employee.profile_image = url
        self.db.commit()

        if previous:
            storage.delete_by_url(previous)

        return ImageUploadResponse(employee_id=employee.id, profile_image=url)

    def _set_salary(self, employee: Employee, structure: SalaryStructure, taxes: TaxDeductions):
        employee.salary_structure = structure.model_dump(mode="json")
        employee.tax_deductions = taxes.model_dump(mode="json")
        employee.salary = salary_breakdown(structure, taxes)[1]

    @staticmethod
    def _structure_of(employee: Employee) -> SalaryStructure:
        return SalaryStructure.model_validate(employee.salary_structure or {})

    @staticmethod
    def _taxes_of(employee: Employee) -> TaxDeductions:
        return TaxDeductions.model_validate(employee.tax_deductions or {})
