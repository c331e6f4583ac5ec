from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class InvoiceType(str, enum.Enum):
    SALES = "sales"                        # Regular checkout
    PRODUCT_ADDITION = "product_addition"  # Batch stock intake
    EXCHANGE = "exchange"                  # Amount owed after an exchange


class InvoiceStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PENDING = "pending"  # Exchange balance awaiting settlement


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Invoice(Base, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_number = Column(String(30), nullable=False, unique=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)

    # Snapshot of the buyer at sale time
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(30), nullable=True)

    invoice_type = Column(
        Enum(InvoiceType, values_callable=_enum_values, name="invoice_type"),
        nullable=False,
        default=InvoiceType.SALES,
        index=True
    )
    status = Column(
        Enum(InvoiceStatus, values_callable=_enum_values, name="invoice_status"),
        nullable=False,
        default=InvoiceStatus.UNPAID
    )

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    advance_payment = Column(Numeric(15, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(15, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)

    # Relationships
    customer = relationship("Customer", back_populates="invoices")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")

    @property
    def paid_amount(self):
        """Net of all payments, refunds included"""
        return sum((payment.amount for payment in self.payments), 0)


class InvoiceItem(Base, TimestampMixin):
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    # Snapshot data (preserved if the product changes)
    product_name = Column(String(200), nullable=False)

    quantity = Column(Integer, nullable=False)  # Original purchase count
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_type = Column(
        Enum(DiscountType, values_callable=_enum_values, name="discount_type"),
        nullable=False,
        default=DiscountType.PERCENTAGE
    )
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_price = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price - discount_amount

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)  # Negative for refunds
    payment_method = Column(String(30), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    notes = Column(Text, nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")


class InvoiceSequence(Base):
    """Running counter per invoice number prefix"""
    __tablename__ = "invoice_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    prefix = Column(String(10), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("prefix", name="uq_invoice_sequence_prefix"),
    )
