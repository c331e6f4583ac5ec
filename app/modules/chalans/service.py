from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import desc, or_
from datetime import date
from typing import List, Optional
from uuid import UUID
import logging

from app.common.validators import escape_like
from app.modules.chalans.models import Chalan, ChalanItem, ChalanStatus
from app.modules.chalans.schemas import ChalanCreate, ChalanUpdate, ChalanItemIn, ChalanList
from app.modules.customers.models import Customer
from app.modules.customers.service import CustomerService
from app.modules.invoices.numbering import next_number
from app.modules.invoices.service import InvoiceService
from app.modules.products.service import ProductService

logger = logging.getLogger(__name__)

CHALAN_PREFIX = "CH"


def merge_lines(lines: List[ChalanItemIn]) -> List[ChalanItemIn]:
    """
    Collapse lines of the same product into one, keeping first-seen order.

    Quantities are added; the merged line keeps the first line id and the
    first description found.
    """
    merged = {}
    for line in lines:
        current = merged.get(line.product_id)
        if current is None:
            merged[line.product_id] = line.model_copy()
            continue
        current.quantity += line.quantity
        current.id = current.id or line.id
        current.description = current.description or line.description
    return list(merged.values())


class ChalanService:
    """Delivery slips: creation, lookup and editing"""

    def __init__(self, db: Session):
        self.db = db

    def create_chalan(self, chalan_data: ChalanCreate) -> Chalan:
        try:
            customer = CustomerService(self.db).get_customer(chalan_data.customer_id)
            if chalan_data.chalan_number:
                self._ensure_number_free(chalan_data.chalan_number)
                number = chalan_data.chalan_number
            else:
                number = next_number(self.db, CHALAN_PREFIX)

            chalan = Chalan(
                chalan_number=number,
                customer_id=customer.id,
                chalan_date=chalan_data.chalan_date or date.today(),
                status=ChalanStatus.PENDING,
                notes=chalan_data.notes
            )
            self.db.add(chalan)
            self.db.flush()

            product_service = ProductService(self.db)
            for line in merge_lines(chalan_data.items):
                product = product_service.get_product(line.product_id)
                chalan.items.append(ChalanItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    description=line.description
                ))

            self.db.commit()
            self.db.refresh(chalan)
            logger.info(f"Chalan {chalan.chalan_number} created for customer {customer.id}")
            return chalan

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating chalan: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating chalan: {str(e)}"
            )

    def get_chalan(self, chalan_id: UUID) -> Chalan:
        chalan = self.db.query(Chalan).options(
            selectinload(Chalan.items),
            selectinload(Chalan.customer)
        ).filter(Chalan.id == chalan_id).first()

        if not chalan:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Chalan not found"
            )
        return chalan

    def get_chalans(
        self,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[ChalanStatus] = None,
        customer_id: Optional[UUID] = None,
        search: Optional[str] = None
    ) -> ChalanList:
        query = self.db.query(Chalan).join(Customer, Chalan.customer_id == Customer.id)
        if status_filter:
            query = query.filter(Chalan.status == status_filter)
        if customer_id:
            query = query.filter(Chalan.customer_id == customer_id)
        if search:
            term = f"%{escape_like(search)}%"
            query = query.filter(or_(
                Chalan.chalan_number.ilike(term, escape="\\"),
                Customer.name.ilike(term, escape="\\")
            ))

        total = query.count()
        chalans = (
            query.options(selectinload(Chalan.items), selectinload(Chalan.customer))
            .order_by(desc(Chalan.chalan_date), desc(Chalan.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return ChalanList(chalans=chalans, total=total, limit=limit, offset=offset)

    def update_chalan(self, chalan_id: UUID, chalan_update: ChalanUpdate) -> Chalan:
        """
        Edit a slip. When `items` is sent the slip ends up with exactly those
        lines: lines with an id are updated, lines without one are added and
        lines left out are deleted.
        """
        chalan = self.get_chalan(chalan_id)
        changes = chalan_update.model_dump(exclude_unset=True, exclude={"items"})

        try:
            if "customer_id" in changes and changes["customer_id"] is not None:
                CustomerService(self.db).get_customer(changes["customer_id"])
            else:
                changes.pop("customer_id", None)

            number = changes.get("chalan_number")
            if number and number != chalan.chalan_number:
                self._ensure_number_free(number)
            elif "chalan_number" in changes:
                changes.pop("chalan_number")

            for field in ("chalan_date", "status"):
                if field in changes and changes[field] is None:
                    changes.pop(field)

            customer_id = changes.get("customer_id", chalan.customer_id)
            invoice_id = changes.get("invoice_id", chalan.invoice_id)
            if invoice_id is not None:
                invoice = InvoiceService(self.db).get_invoice(invoice_id)
                if invoice.customer_id != customer_id:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="Invoice belongs to another customer"
                    )

            for field, value in changes.items():
                setattr(chalan, field, value)

            if chalan_update.items is not None:
                self._replace_items(chalan, chalan_update.items)

            self.db.commit()
            self.db.refresh(chalan)
            logger.info(f"Chalan {chalan.chalan_number} updated")
            return chalan

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating chalan {chalan_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating chalan: {str(e)}"
            )

    def _replace_items(self, chalan: Chalan, lines: List[ChalanItemIn]):
        existing = {item.id: item for item in chalan.items}
        product_service = ProductService(self.db)
        kept = []

        for line in merge_lines(lines):
            product = product_service.get_product(line.product_id)
            if line.id is not None:
                item = existing.get(line.id)
                if item is None:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail="Chalan item not found on this chalan"
                    )
                item.product_id = product.id
                item.product_name = product.name
                item.quantity = line.quantity
                item.description = line.description
            else:
                item = ChalanItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    description=line.description
                )
            kept.append(item)

        chalan.items = kept

    def _ensure_number_free(self, number: str):
        if self.db.query(Chalan).filter(Chalan.chalan_number == number).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Chalan number {number} already exists"
            )
