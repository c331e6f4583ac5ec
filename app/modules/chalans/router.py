from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.chalans.models import ChalanStatus
from app.modules.chalans.schemas import ChalanCreate, ChalanUpdate, ChalanOut, ChalanList
from app.modules.chalans.service import ChalanService

router = APIRouter(prefix="/chalans", tags=["Chalans"])


@router.post("/", response_model=ChalanOut, status_code=status.HTTP_201_CREATED)
def create_chalan(
    chalan_data: ChalanCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    """
    Create a delivery slip for a customer. Without a chalan_number the next
    CH- number is assigned.
    """
    service = ChalanService(db)
    return service.create_chalan(chalan_data)


@router.get("/", response_model=ChalanList)
def list_chalans(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: Optional[ChalanStatus] = Query(None, alias="status"),
    customer_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Chalan number or customer name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ChalanService(db)
    return service.get_chalans(
        limit=limit, offset=offset, status_filter=status_filter,
        customer_id=customer_id, search=search
    )


@router.get("/{chalan_id}", response_model=ChalanOut)
def get_chalan(
    chalan_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    service = ChalanService(db)
    return service.get_chalan(chalan_id)


@router.patch("/{chalan_id}", response_model=ChalanOut)
def update_chalan(
    chalan_id: UUID,
    chalan_update: ChalanUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin", "manager"]))
):
    service = ChalanService(db)
    return service.update_chalan(chalan_id, chalan_update)
