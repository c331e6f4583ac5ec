from pydantic import BaseModel, Field
from decimal import Decimal
from uuid import UUID
from typing import Optional, List
from datetime import datetime


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    barcode: Optional[str] = Field(None, max_length=64)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    quantity: int = Field(0, ge=0)
    min_stock: int = Field(5, ge=0)
    buying_price: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(..., ge=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    barcode: Optional[str] = Field(None, max_length=64)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    min_stock: Optional[int] = Field(None, ge=0)
    buying_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)


class ProductOut(BaseModel):
    id: UUID
    name: str
    barcode: Optional[str]
    category: Optional[str]
    description: Optional[str]
    quantity: int
    min_stock: int
    buying_price: Decimal
    selling_price: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductOut]
    total: int
    limit: int
    offset: int


class ProductHistoryOut(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    action_type: str
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class StockAdjustment(BaseModel):
    """Signed manual correction of on-hand quantity"""
    delta: int = Field(..., description="Positive adds stock, negative removes it")
    notes: Optional[str] = Field(None, max_length=255)


class BatchIntakeLine(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)
    buying_price: Optional[Decimal] = Field(None, ge=0)


class BatchIntakeCreate(BaseModel):
    """Receive several products in one delivery"""
    lines: List[BatchIntakeLine] = Field(..., min_length=1)
    notes: Optional[str] = None


class BatchIntakeResult(BaseModel):
    invoice_id: UUID
    invoice_number: str
    total_amount: Decimal
    products: List[ProductOut]


class LowStockProduct(BaseModel):
    id: UUID
    name: str
    quantity: int
    min_stock: int

    class Config:
        from_attributes = True


class LowStockResponse(BaseModel):
    products: List[LowStockProduct]
    total_count: int
