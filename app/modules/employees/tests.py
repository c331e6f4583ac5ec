"""
Tests for employees: salary computation, payroll runs and profile images
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException

from app.modules.employees.models import Payroll, SalaryPayment, EmployeeStatus, SalaryRunType
from app.modules.employees.schemas import (
    EmployeeCreate, EmployeeUpdate, SalaryStructure, TaxDeductions, SalaryRun
)
from app.modules.employees.service import EmployeeService, salary_breakdown


@pytest.fixture
def employee(db_session):
    return EmployeeService(db_session).create_employee(EmployeeCreate(
        name="Marta Gil",
        position="Cashier",
        salary_structure=SalaryStructure(
            basic_salary=Decimal("1000"),
            allowances=Decimal("200"),
            bonuses=Decimal("50"),
            overtime=Decimal("25.50"),
            deductions=Decimal("30")
        ),
        tax_deductions=TaxDeductions(
            income_tax=Decimal("100"),
            provident_fund=Decimal("40"),
            insurance=Decimal("20"),
            other_deductions=Decimal("5.50")
        )
    ))


class TestSalaryBreakdown:

    def test_gross_and_net(self):
        gross, net = salary_breakdown(
            SalaryStructure(basic_salary=Decimal("1000"), allowances=Decimal("200"), deductions=Decimal("50")),
            TaxDeductions(income_tax=Decimal("100"))
        )
        assert gross == Decimal("1200.00")
        assert net == Decimal("1050.00")

    def test_empty_structure(self):
        assert salary_breakdown(SalaryStructure(), TaxDeductions()) == (Decimal("0.00"), Decimal("0.00"))


class TestEmployeeService:

    def test_create_stores_net_salary(self, employee):
        assert employee.status == EmployeeStatus.ACTIVE
        assert employee.salary == Decimal("1080.00")

    def test_update_structure_recomputes_salary(self, db_session, employee):
        updated = EmployeeService(db_session).update_employee(
            employee.id, EmployeeUpdate(tax_deductions=TaxDeductions())
        )
        assert updated.salary == Decimal("1245.50")

    def test_process_salary(self, db_session, employee):
        result = EmployeeService(db_session).process_salary(
            employee.id, SalaryRun(payment_date=date(2026, 3, 31), automated=True)
        )

        assert result.payroll.gross_amount == Decimal("1275.50")
        assert result.payroll.net_amount == Decimal("1080.00")
        assert result.payroll.payment_type == SalaryRunType.AUTOMATED
        assert result.payment.amount == Decimal("1080.00")
        assert result.payment.payment_method == "bank_transfer"
        assert result.payment.status == "completed"
        assert result.employee.last_salary_payment == date(2026, 3, 31)
        assert result.employee.last_automated_salary_date == date(2026, 3, 31)

        assert db_session.query(Payroll).count() == 1
        assert db_session.query(SalaryPayment).count() == 1

    def test_automated_run_once_per_month(self, db_session, employee):
        service = EmployeeService(db_session)
        service.process_salary(employee.id, SalaryRun(payment_date=date(2026, 3, 1), automated=True))

        with pytest.raises(HTTPException) as exc_info:
            service.process_salary(employee.id, SalaryRun(payment_date=date(2026, 3, 28), automated=True))
        assert exc_info.value.status_code == 409

        service.process_salary(employee.id, SalaryRun(payment_date=date(2026, 3, 28), automated=False))
        service.process_salary(employee.id, SalaryRun(payment_date=date(2026, 4, 1), automated=True))
        assert db_session.query(SalaryPayment).count() == 3

    def test_manual_run_keeps_automated_date(self, db_session, employee):
        result = EmployeeService(db_session).process_salary(
            employee.id, SalaryRun(payment_date=date(2026, 5, 2))
        )
        assert result.employee.last_salary_payment == date(2026, 5, 2)
        assert result.employee.last_automated_salary_date is None

    def test_inactive_employee_cannot_be_paid(self, db_session, employee):
        service = EmployeeService(db_session)
        service.update_employee(employee.id, EmployeeUpdate(status=EmployeeStatus.INACTIVE))
        with pytest.raises(HTTPException) as exc_info:
            service.process_salary(employee.id, SalaryRun())
        assert exc_info.value.status_code == 400

    def test_payroll_summary(self, db_session, employee):
        service = EmployeeService(db_session)
        other = service.create_employee(EmployeeCreate(
            name="Luis Paz", salary_structure=SalaryStructure(basic_salary=Decimal("500"))
        ))
        service.process_salary(employee.id, SalaryRun(payment_date=date(2026, 6, 3)))

        summary = service.get_payroll_summary(today=date(2026, 6, 15))
        assert summary.active_employees == 2
        assert summary.total_monthly_salary == Decimal("1580.00")
        assert summary.paid_this_month == Decimal("1080.00")
        assert summary.pending_amount == Decimal("500.00")
        assert summary.pending_employees == [other.id]

    def test_unknown_employee(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            EmployeeService(db_session).get_employee(uuid4())
        assert exc_info.value.status_code == 404


class TestEmployeesAPI:

    def test_create_and_pay(self, client):
        response = client.post("/employees/", json={
            "name": "Marta Gil",
            "phone": "555-123-4567",
            "salary_structure": {"basic_salary": "900", "allowances": "100"},
            "tax_deductions": {"income_tax": "50"}
        })
        assert response.status_code == 201
        employee = response.json()
        assert Decimal(employee["salary"]) == Decimal("950.00")
        assert employee["phone"] == "5551234567"

        response = client.post(f"/employees/{employee['id']}/salary", json={
            "payment_date": "2026-02-27", "automated": True
        })
        assert response.status_code == 201

        response = client.post(f"/employees/{employee['id']}/salary", json={
            "payment_date": "2026-02-28", "automated": True
        })
        assert response.status_code == 409

        response = client.get(f"/employees/{employee['id']}/salary-payments")
        assert len(response.json()) == 1

    def test_profile_image_upload(self, client, employee, image_storage):
        response = client.post(
            f"/employees/{employee.id}/image",
            files={"file": ("me.png", b"\x89PNG fake", "image/png")}
        )
        assert response.status_code == 200
        url = response.json()["profile_image"]
        assert url.endswith("/me.png")
        assert image_storage.uploaded[0] == (url, b"\x89PNG fake")

        response = client.post(
            f"/employees/{employee.id}/image",
            files={"file": ("new.png", b"\x89PNG newer", "image/png")}
        )
        assert response.status_code == 200
        assert image_storage.deleted == [url]
