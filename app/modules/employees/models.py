from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Enum, Text, Date, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentFrequency(str, enum.Enum):
    MONTHLY = "monthly"
    BIWEEKLY = "biweekly"
    WEEKLY = "weekly"


class SalaryRunType(str, enum.Enum):
    AUTOMATED = "automated"
    MANUAL = "manual"


class Employee(Base, TimestampMixin):
    __tablename__ = "employees"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(200), nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    position = Column(String(100), nullable=True)
    hire_date = Column(Date, nullable=True)
    status = Column(
        Enum(EmployeeStatus, values_callable=_enum_values, name="employee_status"),
        nullable=False,
        default=EmployeeStatus.ACTIVE
    )
    payment_frequency = Column(
        Enum(PaymentFrequency, values_callable=_enum_values, name="payment_frequency"),
        nullable=False,
        default=PaymentFrequency.MONTHLY
    )

    # Net monthly salary derived from the structure below
    salary = Column(Numeric(15, 2), nullable=False, default=0)
    salary_structure = Column(JSON, nullable=True)
    tax_deductions = Column(JSON, nullable=True)

    profile_image = Column(String(500), nullable=True)
    last_salary_payment = Column(Date, nullable=True)
    last_automated_salary_date = Column(Date, nullable=True)

    payrolls = relationship("Payroll", back_populates="employee", cascade="all, delete-orphan")
    salary_payments = relationship("SalaryPayment", back_populates="employee", cascade="all, delete-orphan")


class Payroll(Base, TimestampMixin):
    """Snapshot of the salary computation for one payment"""
    __tablename__ = "payrolls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True)
    payment_date = Column(Date, nullable=False)
    gross_amount = Column(Numeric(15, 2), nullable=False)
    net_amount = Column(Numeric(15, 2), nullable=False)
    payment_frequency = Column(String(20), nullable=False, default="monthly")
    salary_structure = Column(JSON, nullable=True)
    tax_deductions = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="paid")
    payment_type = Column(
        Enum(SalaryRunType, values_callable=_enum_values, name="salary_run_type"),
        nullable=False
    )

    employee = relationship("Employee", back_populates="payrolls")


class SalaryPayment(Base, TimestampMixin):
    __tablename__ = "salary_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method = Column(String(30), nullable=False, default="bank_transfer")
    payment_type = Column(
        Enum(SalaryRunType, values_callable=_enum_values, name="salary_run_type"),
        nullable=False
    )
    status = Column(String(20), nullable=False, default="completed")
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    employee = relationship("Employee", back_populates="salary_payments")
