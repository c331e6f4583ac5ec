from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.customers.schemas import (
    CustomerCreate, CustomerUpdate, CustomerOut, CustomerList, CustomerSummary
)
from app.modules.customers.service import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = CustomerService(db)
    return service.create_customer(customer_data)


@router.get("/", response_model=CustomerList)
def list_customers(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Name, phone or email"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = CustomerService(db)
    return service.get_customers(limit=limit, offset=offset, search=search)


@router.get("/search", response_model=List[CustomerSummary])
def search_customers(
    q: str = Query(..., description="At least 2 characters"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Quick lookup by name, phone or email (max 10 results).
    """
    service = CustomerService(db)
    return service.search_customers(q)


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = CustomerService(db)
    return service.get_customer(customer_id)


@router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: UUID,
    customer_update: CustomerUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = CustomerService(db)
    return service.update_customer(customer_id, customer_update)
