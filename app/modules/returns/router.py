from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.customers.schemas import CustomerSummary
from app.modules.invoices.schemas import InvoiceSummary
from app.modules.products.schemas import ProductOut
from app.modules.returns.flow import ReturnFlowState, FlowAction
from app.modules.returns.models import ReturnStatus
from app.modules.returns.schemas import (
    ReturnableInvoice, ReturnRequest, ReturnQuote, ReturnResult,
    ReturnOut, ReturnList, ReturnStatusUpdate
)
from app.modules.returns.service import ReturnService

router = APIRouter(prefix="/returns", tags=["Returns"])


class FlowTransition(BaseModel):
    state: ReturnFlowState = ReturnFlowState()
    action: FlowAction


@router.get("/customers", response_model=List[CustomerSummary])
def search_customers(
    q: str = Query(..., description="Name, phone or email, at least 2 characters"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.search_customers(q)


@router.get("/customers/{customer_id}/invoices", response_model=List[InvoiceSummary])
def get_customer_invoices(
    customer_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.get_customer_invoices(customer_id)


@router.get("/exchange-products", response_model=List[ProductOut])
def search_exchange_products(
    q: Optional[str] = Query(None, description="Filter by product name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Products in stock that can be handed out in an exchange.
    """
    service = ReturnService(db)
    return service.search_exchange_products(q)


@router.post("/flow/transition", response_model=ReturnFlowState)
def flow_transition(
    payload: FlowTransition,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.advance_flow(payload.state, payload.action)


@router.get("/invoices/{invoice_id}/items", response_model=ReturnableInvoice)
def get_returnable_items(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.get_returnable_items(invoice_id)


@router.post("/invoices/{invoice_id}/quote", response_model=ReturnQuote)
def quote_return(
    invoice_id: UUID,
    request: ReturnRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.quote_return(invoice_id, request)


@router.post("/invoices/{invoice_id}", response_model=ReturnResult, status_code=status.HTTP_201_CREATED)
def process_return(
    invoice_id: UUID,
    request: ReturnRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Record a refund or exchange for one line of a sales invoice.
    """
    service = ReturnService(db)
    return service.process_return(invoice_id, request)


@router.get("/", response_model=ReturnList)
def list_returns(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[ReturnStatus] = Query(None),
    search: Optional[str] = Query(None, description="Reason or customer name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.list_returns(limit=limit, offset=offset, status_filter=status, search=search)


@router.get("/{return_id}", response_model=ReturnOut)
def get_return(
    return_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ReturnService(db)
    return service.get_return(return_id)


@router.patch("/{return_id}/status", response_model=ReturnOut)
def update_return_status(
    return_id: UUID,
    update: ReturnStatusUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = ReturnService(db)
    return service.update_return_status(return_id, update)
