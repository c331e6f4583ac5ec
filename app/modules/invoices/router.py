from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.invoices.models import InvoiceType, InvoiceStatus
from app.modules.invoices.schemas import (
    SaleCreate, InvoiceOut, InvoiceDetail, InvoiceList, PaymentCreate, PaymentOut
)
from app.modules.invoices.service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/sales", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Checkout a cart.

    Stock is decremented for every line. A customer is looked up by phone
    (and created on first sale) when no customer_id is given.
    """
    service = InvoiceService(db)
    return service.create_sale(sale_data)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    invoice_type: Optional[InvoiceType] = Query(None, description="sales, product_addition or exchange"),
    customer_id: Optional[UUID] = Query(None),
    status: Optional[InvoiceStatus] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = InvoiceService(db)
    return service.get_invoices(
        limit=limit, offset=offset, invoice_type=invoice_type,
        customer_id=customer_id, status_filter=status
    )


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = InvoiceService(db)
    return service.get_invoice_detail(invoice_id)


# --- PAYMENTS ---

@router.post("/{invoice_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def add_payment(
    invoice_id: UUID,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Register a payment against the outstanding balance.
    """
    service = InvoiceService(db)
    return service.add_payment(invoice_id, payment_data)


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def get_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = InvoiceService(db)
    return service.get_invoice_payments(invoice_id)
