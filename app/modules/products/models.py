from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


class HistoryAction(enum.Enum):
    ADD = "add"              # Stock intake
    SALE = "sale"            # Sold through checkout
    RETURN = "return"        # Returned by a customer
    REMOVE = "remove"        # Handed out in an exchange
    ADJUSTMENT = "adjustment"


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    barcode = Column(String(64), nullable=True, unique=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)  # On hand
    min_stock = Column(Integer, nullable=False, default=5)
    buying_price = Column(Numeric(15, 2), nullable=False, default=0)
    selling_price = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    history = relationship("ProductHistory", back_populates="product")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_quantity_non_negative"),
    )


class ProductHistory(Base, TimestampMixin):
    """Append-only audit trail, one row per inventory mutation"""
    __tablename__ = "product_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # Always positive, direction given by action_type
    action_type = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)

    product = relationship("Product", back_populates="history")
