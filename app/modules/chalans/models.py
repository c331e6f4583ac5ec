from app.database.database import Base
from sqlalchemy import Column, Date, Integer, String, ForeignKey, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import date
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ChalanStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Chalan(Base, TimestampMixin):
    __tablename__ = "chalans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    chalan_number = Column(String(30), nullable=False, unique=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True)

    chalan_date = Column(Date, nullable=False, default=date.today)
    status = Column(
        Enum(ChalanStatus, values_callable=_enum_values, name="chalan_status"),
        nullable=False,
        default=ChalanStatus.PENDING,
        index=True
    )
    notes = Column(Text, nullable=True)

    # Relationships
    customer = relationship("Customer")
    invoice = relationship("Invoice")
    items = relationship(
        "ChalanItem",
        back_populates="chalan",
        cascade="all, delete-orphan",
        order_by="ChalanItem.created_at"
    )

    @property
    def customer_name(self):
        return self.customer.name if self.customer else None

    @property
    def invoiced(self):
        return self.invoice_id is not None

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items)


class ChalanItem(Base, TimestampMixin):
    __tablename__ = "chalan_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    chalan_id = Column(UUID(as_uuid=True), ForeignKey("chalans.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)

    # Snapshot data (preserved if the product changes)
    product_name = Column(String(200), nullable=False)

    quantity = Column(Integer, nullable=False)
    description = Column(String(255), nullable=True)

    # Relationships
    chalan = relationship("Chalan", back_populates="items")
    product = relationship("Product")
