from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from app.common.validators import escape_like
from app.core.config import settings
from app.modules.products.models import Product, ProductHistory, HistoryAction
from app.modules.products.schemas import (
    ProductCreate, ProductUpdate, ProductList, StockAdjustment,
    BatchIntakeCreate, BatchIntakeResult, ProductOut, LowStockResponse, LowStockProduct
)
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceType, InvoiceStatus
from app.modules.invoices.numbering import generate_invoice_number

logger = logging.getLogger(__name__)


class ProductService:
    """Catalog and on-hand quantity management"""

    def __init__(self, db: Session):
        self.db = db

    def create_product(self, product_data: ProductCreate) -> Product:
        try:
            product = Product(**product_data.model_dump())
            self.db.add(product)
            self.db.flush()

            if product.quantity > 0:
                self._record_history(product.id, product.quantity, HistoryAction.ADD, "Initial stock")

            self.db.commit()
            self.db.refresh(product)
            return product
        except IntegrityError as e:
            self.db.rollback()
            if "barcode" in str(e.orig):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"A product with barcode {product_data.barcode} already exists"
                )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Integrity error: {str(e.orig)}"
            )

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found"
            )
        return product

    def update_product(self, product_id: UUID, product_update: ProductUpdate) -> Product:
        product = self.get_product(product_id)
        for field, value in product_update.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    def get_products(
        self,
        limit: int = 20,
        offset: int = 0,
        search: Optional[str] = None,
        in_stock: bool = False
    ) -> ProductList:
        query = self.db.query(Product)
        if search:
            query = query.filter(Product.name.ilike(f"%{escape_like(search)}%", escape="\\"))
        if in_stock:
            query = query.filter(Product.quantity > 0)

        total = query.count()
        products = query.order_by(Product.name).offset(offset).limit(limit).all()
        return ProductList(products=products, total=total, limit=limit, offset=offset)

    def search_exchange_candidates(self, search: Optional[str] = None) -> List[Product]:
        """Products with stock on hand, optionally filtered by name."""
        query = self.db.query(Product).filter(Product.quantity > 0)
        if search:
            query = query.filter(Product.name.ilike(f"%{escape_like(search)}%", escape="\\"))
        return query.order_by(Product.name).limit(settings.EXCHANGE_PRODUCT_LIMIT).all()

    def adjust_quantity(
        self,
        product: Product,
        delta: int,
        action: HistoryAction,
        notes: Optional[str] = None
    ) -> Product:
        """
        Apply a signed change to on-hand quantity and append one history row.

        Flushes but does not commit, so callers can group several mutations
        into one transaction.
        """
        if delta == 0:
            return product

        new_quantity = (product.quantity or 0) + delta
        if new_quantity < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Insufficient stock for {product.name}. Available: {product.quantity}, requested: {-delta}"
            )

        product.quantity = new_quantity
        self._record_history(product.id, abs(delta), action, notes)
        self.db.flush()

        logger.debug(f"Product {product.id} quantity {action.value} {delta:+d} -> {new_quantity}")
        return product

    def apply_adjustment(self, product_id: UUID, adjustment: StockAdjustment) -> Product:
        product = self.get_product(product_id)
        try:
            self.adjust_quantity(product, adjustment.delta, HistoryAction.ADJUSTMENT, adjustment.notes)
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        self.db.refresh(product)
        return product

    def batch_intake(self, intake: BatchIntakeCreate) -> BatchIntakeResult:
        """
        Receive a delivery: each line adds stock and the whole batch is
        recorded as one product_addition invoice.
        """
        try:
            invoice = Invoice(
                invoice_number=generate_invoice_number(self.db, InvoiceType.PRODUCT_ADDITION),
                invoice_type=InvoiceType.PRODUCT_ADDITION,
                status=InvoiceStatus.PAID,
                notes=intake.notes
            )
            self.db.add(invoice)
            self.db.flush()

            total = Decimal("0.00")
            products = []
            for line in intake.lines:
                product = self.get_product(line.product_id)
                if line.buying_price is not None:
                    product.buying_price = line.buying_price

                self.adjust_quantity(
                    product, line.quantity, HistoryAction.ADD,
                    f"Stock added via invoice #{invoice.invoice_number}"
                )

                line_total = Decimal(product.buying_price) * line.quantity
                self.db.add(InvoiceItem(
                    invoice_id=invoice.id,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=product.buying_price,
                    total_price=line_total
                ))
                total += line_total
                products.append(product)

            invoice.subtotal = total
            invoice.total_amount = total
            invoice.advance_payment = total
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Batch intake failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error receiving stock: {str(e)}"
            )

        for product in products:
            self.db.refresh(product)
        logger.info(f"Received {len(intake.lines)} lines on invoice {invoice.invoice_number}")

        return BatchIntakeResult(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_amount=total,
            products=[ProductOut.model_validate(p) for p in products]
        )

    def get_history(self, product_id: UUID, limit: int = 50, offset: int = 0) -> List[ProductHistory]:
        self.get_product(product_id)
        return (
            self.db.query(ProductHistory)
            .filter(ProductHistory.product_id == product_id)
            .order_by(desc(ProductHistory.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_low_stock(self) -> LowStockResponse:
        products = (
            self.db.query(Product)
            .filter(Product.quantity <= Product.min_stock)
            .order_by(Product.quantity)
            .all()
        )
        return LowStockResponse(
            products=[LowStockProduct.model_validate(p) for p in products],
            total_count=len(products)
        )

    def _record_history(self, product_id: UUID, quantity: int, action: HistoryAction, notes: Optional[str]):
        self.db.add(ProductHistory(
            product_id=product_id,
            quantity=quantity,
            action_type=action.value,
            notes=notes
        ))
