from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.chalans.models import ChalanStatus


class ChalanItemIn(BaseModel):
    """A line on a slip. `id` refers to an existing line when editing."""
    id: Optional[UUID] = None
    product_id: UUID
    quantity: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class ChalanCreate(BaseModel):
    customer_id: UUID
    chalan_number: Optional[str] = Field(None, min_length=1, max_length=30)
    chalan_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[ChalanItemIn] = Field(..., min_length=1)


class ChalanUpdate(BaseModel):
    """Partial update; `items`, when sent, replaces the lines of the slip."""
    customer_id: Optional[UUID] = None
    chalan_number: Optional[str] = Field(None, min_length=1, max_length=30)
    chalan_date: Optional[date] = None
    status: Optional[ChalanStatus] = None
    invoice_id: Optional[UUID] = None
    notes: Optional[str] = None
    items: Optional[List[ChalanItemIn]] = Field(None, min_length=1)


class ChalanItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    description: Optional[str]

    class Config:
        from_attributes = True


class ChalanOut(BaseModel):
    id: UUID
    chalan_number: str
    customer_id: UUID
    customer_name: Optional[str]
    invoice_id: Optional[UUID]
    invoiced: bool
    chalan_date: date
    status: ChalanStatus
    notes: Optional[str]
    total_quantity: int
    items: List[ChalanItemOut]
    created_at: datetime

    class Config:
        from_attributes = True


class ChalanList(BaseModel):
    chalans: List[ChalanOut]
    total: int
    limit: int
    offset: int
