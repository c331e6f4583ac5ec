from sqlalchemy import Column, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.database.database import Base
from app.common.mixins import TimestampMixin


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    phone = Column(String(30), nullable=True, index=True)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)

    invoices = relationship("Invoice", back_populates="customer")
