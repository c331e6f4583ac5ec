from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.products.schemas import (
    ProductCreate, ProductUpdate, ProductOut, ProductList, ProductHistoryOut,
    StockAdjustment, BatchIntakeCreate, BatchIntakeResult, LowStockResponse
)
from app.modules.products.service import ProductService

product_router = APIRouter(prefix="/products")


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = ProductService(db)
    return service.create_product(product_data)


@product_router.get("/", response_model=ProductList)
def list_products(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Filter by name"),
    in_stock: bool = Query(False, description="Only products with quantity > 0"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ProductService(db)
    return service.get_products(limit=limit, offset=offset, search=search, in_stock=in_stock)


@product_router.get("/low-stock", response_model=LowStockResponse)
def low_stock_products(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Products at or below their minimum stock level.
    """
    service = ProductService(db)
    return service.get_low_stock()


@product_router.post("/batch-intake", response_model=BatchIntakeResult, status_code=status.HTTP_201_CREATED)
def batch_intake(
    intake: BatchIntakeCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    """
    Receive stock for several products at once.
    """
    service = ProductService(db)
    return service.batch_intake(intake)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(
    product_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ProductService(db)
    return service.get_product(product_id)


@product_router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: UUID,
    product_update: ProductUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = ProductService(db)
    return service.update_product(product_id, product_update)


@product_router.post("/{product_id}/adjust", response_model=ProductOut)
def adjust_stock(
    product_id: UUID,
    adjustment: StockAdjustment,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = ProductService(db)
    return service.apply_adjustment(product_id, adjustment)


@product_router.get("/{product_id}/history", response_model=List[ProductHistoryOut])
def get_product_history(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ProductService(db)
    return service.get_history(product_id, limit=limit, offset=offset)
