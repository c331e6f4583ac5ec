from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.modules.invoices.models import InvoiceType, InvoiceStatus, DiscountType


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE = "mobile"


# Checkout Schemas
class SaleLineCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0, description="Quantity must be greater than 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Defaults to the product selling price")
    discount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: DiscountType = DiscountType.PERCENTAGE

    @model_validator(mode='after')
    def validate_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount > 100:
            raise ValueError('A percentage discount cannot exceed 100')
        return self


class SaleCreate(BaseModel):
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=30)
    lines: List[SaleLineCreate] = Field(..., min_length=1, description="At least one product is required")
    discount_value: Decimal = Field(Decimal("0"), ge=0, description="Cart-level discount")
    discount_type: DiscountType = DiscountType.PERCENTAGE
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Percent applied after discounts")
    advance_payment: Decimal = Field(Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError('A percentage discount cannot exceed 100')
        return self


class SaleLineTotals(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    total_price: Decimal


class SaleTotals(BaseModel):
    """Computed checkout figures"""
    lines: List[SaleLineTotals]
    subtotal: Decimal          # After per-line discounts
    discount_amount: Decimal   # Cart-level discount
    tax_amount: Decimal
    total_amount: Decimal
    remaining_amount: Decimal
    status: InvoiceStatus


# Invoice Schemas
class InvoiceItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    discount_type: DiscountType
    discount_amount: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: Optional[UUID]
    customer_name: Optional[str]
    customer_phone: Optional[str]
    invoice_type: InvoiceType
    status: InvoiceStatus
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    advance_payment: Decimal
    remaining_amount: Decimal
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceSummary(BaseModel):
    """Projection used when picking an invoice for a return"""
    id: UUID
    invoice_number: str
    created_at: datetime
    total_amount: Decimal
    status: InvoiceStatus

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount must be greater than 0")
    payment_method: PaymentMethod
    notes: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return v.quantize(Decimal("0.01"))


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    payment_method: str
    payment_date: datetime
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    """Invoice with its line items and payments"""
    items: List[InvoiceItemOut]
    payments: List[PaymentOut] = []
    paid_amount: Decimal


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
