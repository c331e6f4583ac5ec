"""
Staff records, payroll and salary payments.
"""

from app.modules.employees.models import Employee, Payroll, SalaryPayment

__all__ = ["Employee", "Payroll", "SalaryPayment"]
