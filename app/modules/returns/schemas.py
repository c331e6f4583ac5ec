from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.modules.invoices.schemas import InvoiceOut, InvoiceSummary, PaymentOut
from app.modules.returns.models import ReturnType, ReturnStatus


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    STORE_CREDIT = "store_credit"
    CASH = "cash"


class Settlement(str, Enum):
    REFUND = "refund"                # Money goes back to the customer
    CUSTOMER_OWES = "customer_owes"  # Exchange worth more than the return
    STORE_CREDIT = "store_credit"    # Exchange worth less than the return
    EVEN = "even"                    # No money changes hands


class ReturnableItem(BaseModel):
    id: UUID  # Invoice item id
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    already_returned: int
    max_return_quantity: int


class ReturnableInvoice(BaseModel):
    invoice: InvoiceSummary
    customer_id: Optional[UUID]
    items: List[ReturnableItem]
    notices: List[str] = []


class ReturnRequest(BaseModel):
    invoice_item_id: Optional[UUID] = Field(None, description="Line being returned")
    quantity: int = Field(1, description="Units returned")
    return_type: ReturnType = ReturnType.REFUND
    exchange_product_id: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=1000)
    condition: Optional[str] = Field(None, max_length=30)
    return_fees: Decimal = Field(Decimal("0"), ge=0)
    payment_method: RefundMethod = RefundMethod.ORIGINAL
    admin_notes: Optional[str] = Field(None, max_length=1000)


class ReturnQuote(BaseModel):
    """Monetary outcome of a return, computed without writing anything"""
    max_return_quantity: int
    refund_amount: Decimal
    return_fees: Decimal
    net_refund: Decimal
    exchange_amount: Decimal = Decimal("0.00")
    price_difference: Decimal = Decimal("0.00")
    same_product: bool = False
    settlement: Settlement
    error: Optional[str] = None


class ReturnOut(BaseModel):
    id: UUID
    invoice_id: UUID
    invoice_number: Optional[str] = None
    product_id: UUID
    product_name: Optional[str] = None
    customer_id: Optional[UUID]
    customer_name: Optional[str] = None
    quantity: int
    reason: str
    return_type: ReturnType
    status: ReturnStatus
    refund_amount: Decimal
    exchange_product_id: Optional[UUID]
    exchange_product_name: Optional[str] = None
    price_difference: Decimal
    payment_method: str
    condition: str
    return_fees: Decimal
    admin_notes: str
    total_amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class ReturnResult(BaseModel):
    product_return: ReturnOut
    quote: ReturnQuote
    payment: Optional[PaymentOut] = None
    exchange_invoice: Optional[InvoiceOut] = None


class ReturnList(BaseModel):
    returns: List[ReturnOut]
    total: int
    limit: int
    offset: int


class ReturnStatusUpdate(BaseModel):
    status: ReturnStatus
    admin_notes: Optional[str] = Field(None, max_length=1000)
