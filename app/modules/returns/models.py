from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ReturnType(str, enum.Enum):
    REFUND = "refund"
    EXCHANGE = "exchange"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ProductReturn(Base, TimestampMixin):
    """One return or exchange transaction against a sales invoice"""
    __tablename__ = "product_returns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)

    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False, default="No reason provided")
    return_type = Column(
        Enum(ReturnType, values_callable=_enum_values, name="return_type"),
        nullable=False
    )
    status = Column(
        Enum(ReturnStatus, values_callable=_enum_values, name="return_status"),
        nullable=False,
        default=ReturnStatus.PENDING
    )

    # Money (refund_amount is net of fees)
    refund_amount = Column(Numeric(15, 2), nullable=False, default=0)
    exchange_product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=True)
    price_difference = Column(Numeric(15, 2), nullable=False, default=0)
    payment_method = Column(String(30), nullable=False, default="none")
    condition = Column(String(30), nullable=False, default="good")
    return_fees = Column(Numeric(15, 2), nullable=False, default=0)
    admin_notes = Column(Text, nullable=False, default="No additional notes")
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    invoice = relationship("Invoice")
    customer = relationship("Customer")
    product = relationship("Product", foreign_keys=[product_id])
    exchange_product = relationship("Product", foreign_keys=[exchange_product_id])

    @property
    def customer_name(self):
        return self.customer.name if self.customer else None

    @property
    def invoice_number(self):
        return self.invoice.invoice_number if self.invoice else None

    @property
    def product_name(self):
        return self.product.name if self.product else None

    @property
    def exchange_product_name(self):
        return self.exchange_product.name if self.exchange_product else None
