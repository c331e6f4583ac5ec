"""
Return and exchange processing.

Locates a customer's sales invoices, works out what is still returnable,
quotes the refund or exchange and writes the outcome (return row, stock
movements, refund payment or exchange invoice) in a single transaction.
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import ProgrammingError, OperationalError
from sqlalchemy import desc, func, or_
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from app.common.validators import escape_like
from app.modules.customers.models import Customer
from app.modules.customers.service import CustomerService
from app.modules.invoices.models import (
    Invoice, InvoiceItem, Payment, InvoiceType, InvoiceStatus
)
from app.modules.invoices.numbering import generate_invoice_number
from app.modules.invoices.schemas import InvoiceOut, InvoiceSummary, PaymentOut
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.calculator import money, ZERO
from app.modules.products.models import Product, HistoryAction
from app.modules.products.service import ProductService
from app.modules.returns.calculator import ReturnCalculator
from app.modules.returns.flow import (
    ReturnFlowState, FlowAction, FlowActionType, InvalidTransition, transition
)
from app.modules.returns.models import ProductReturn, ReturnType, ReturnStatus
from app.modules.returns.schemas import (
    ReturnableItem, ReturnableInvoice, ReturnRequest, ReturnQuote, ReturnOut,
    ReturnResult, ReturnList, ReturnStatusUpdate
)

logger = logging.getLogger(__name__)

MIGRATION_NOTICE = (
    "A database update is in progress. Some return history may not be "
    "available until the update completes."
)

# Allowed review moves
STATUS_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.COMPLETED, ReturnStatus.REJECTED},
    ReturnStatus.COMPLETED: set(),
    ReturnStatus.REJECTED: set(),
}


def is_missing_column_error(error: Exception) -> bool:
    """True when the database reports a column the code expects is absent."""
    message = str(getattr(error, "orig", None) or error).lower()
    return ("column" in message and "does not exist" in message) or "no such column" in message


class ReturnService:
    def __init__(self, db: Session):
        self.db = db

    # Lookup

    def search_customers(self, search: str) -> List[Customer]:
        return CustomerService(self.db).search_customers(search)

    def get_customer_invoices(self, customer_id: UUID) -> List[Invoice]:
        """Sales invoices of the customer that have something to return."""
        CustomerService(self.db).get_customer(customer_id)
        return InvoiceService(self.db).get_customer_sales_invoices(customer_id)

    def search_exchange_products(self, search: Optional[str] = None) -> List[Product]:
        return ProductService(self.db).search_exchange_candidates(search)

    # Returnable items

    def get_returnable_items(self, invoice_id: UUID) -> ReturnableInvoice:
        """
        Lines of a sales invoice with the quantity still returnable.

        Lines already fully returned are left out. If the returns table is
        behind the code (missing column), prior returns are treated as none
        and a notice is attached instead of failing the lookup.
        """
        invoice = self._get_sales_invoice(invoice_id)
        notices = []

        try:
            returned = self._returned_by_product(invoice.id)
        except (ProgrammingError, OperationalError) as e:
            if not is_missing_column_error(e):
                logger.error(f"Error fetching previous returns for invoice {invoice_id}: {e}")
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"Error fetching previous returns: {str(e.orig)}"
                )
            logger.warning(
                f"product_returns schema is out of date, ignoring prior returns for invoice {invoice_id}: {e.orig}"
            )
            self.db.rollback()
            returned = {}
            notices.append(MIGRATION_NOTICE)

        items = self._items_of(invoice)
        remaining = ReturnCalculator.remaining_quantities(
            [(item.id, item.product_id, item.quantity) for item in items],
            returned
        )

        returnable = [
            ReturnableItem(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                already_returned=item.quantity - remaining[item.id],
                max_return_quantity=remaining[item.id]
            )
            for item in items
            if remaining[item.id] > 0
        ]

        return ReturnableInvoice(
            invoice=InvoiceSummary.model_validate(invoice),
            customer_id=invoice.customer_id,
            items=returnable,
            notices=notices
        )

    # Quote and process

    def quote_return(self, invoice_id: UUID, request: ReturnRequest) -> ReturnQuote:
        """
        Monetary outcome of a request without writing anything.

        Validation failures are reported in the quote's error field so the
        screen can show them while the operator is still editing.
        """
        invoice = self._get_sales_invoice(invoice_id)
        item, max_quantity = self._resolve_item(invoice, request.invoice_item_id)
        exchange_product = self._resolve_exchange_product(request)
        return self._build_quote(item, max_quantity, request, exchange_product)

    def process_return(self, invoice_id: UUID, request: ReturnRequest) -> ReturnResult:
        """
        Validate and record a return or exchange

        Writes one return row, puts the returned units back in stock, takes
        the exchange units out, and records either a negative refund payment
        or a follow-up exchange invoice for what the customer still owes.
        Everything is committed together or not at all.

        Submitting the same request twice records two returns.
        """
        try:
            invoice = self._get_sales_invoice(invoice_id, for_update=True)
            item, max_quantity = self._resolve_item(invoice, request.invoice_item_id)
            exchange_id = (
                request.exchange_product_id
                if request.return_type == ReturnType.EXCHANGE else None
            )
            locked = self._lock_products(
                [item.product_id if item is not None else None, exchange_id]
            )
            exchange_product = locked[exchange_id] if exchange_id is not None else None
            quote = self._build_quote(item, max_quantity, request, exchange_product)

            if quote.error:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=quote.error
                )

            is_refund = request.return_type == ReturnType.REFUND
            product_return = ProductReturn(
                invoice_id=invoice.id,
                product_id=item.product_id,
                customer_id=invoice.customer_id,
                quantity=request.quantity,
                reason=request.reason or "No reason provided",
                return_type=request.return_type,
                status=ReturnStatus.PENDING,
                refund_amount=quote.net_refund,
                exchange_product_id=exchange_product.id if exchange_product else None,
                price_difference=quote.price_difference,
                payment_method=(
                    request.payment_method.value
                    if is_refund or quote.price_difference > 0 else "none"
                ),
                condition=request.condition or "good",
                return_fees=quote.return_fees,
                admin_notes=request.admin_notes or "No additional notes",
                total_amount=quote.net_refund if is_refund else quote.price_difference
            )
            self.db.add(product_return)
            self.db.flush()

            product_service = ProductService(self.db)
            returned_product = locked[item.product_id]
            product_service.adjust_quantity(
                returned_product, request.quantity, HistoryAction.RETURN,
                f"Returned from invoice #{invoice.invoice_number}"
            )

            payment = None
            exchange_invoice = None
            if exchange_product is not None:
                product_service.adjust_quantity(
                    exchange_product, -request.quantity, HistoryAction.REMOVE,
                    f"Exchanged for returned product from invoice #{invoice.invoice_number}"
                )
                if quote.price_difference > 0 and not quote.same_product:
                    exchange_invoice = self._create_exchange_invoice(
                        invoice, product_return, exchange_product, request.quantity, quote
                    )
            elif quote.net_refund > 0:
                payment = Payment(
                    invoice_id=invoice.id,
                    amount=-quote.net_refund,
                    payment_method=request.payment_method.value,
                    notes=f"Refund for return #{product_return.id}"
                )
                self.db.add(payment)

            self.db.commit()

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error processing return on invoice {invoice_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error processing return: {str(e)}"
            )

        self.db.refresh(product_return)
        if payment is not None:
            self.db.refresh(payment)
        if exchange_invoice is not None:
            self.db.refresh(exchange_invoice)

        logger.info(
            f"Return {product_return.id} recorded on {invoice.invoice_number}: "
            f"{request.return_type.value} of {request.quantity} x {item.product_name}"
        )

        return ReturnResult(
            product_return=ReturnOut.model_validate(product_return),
            quote=quote,
            payment=PaymentOut.model_validate(payment) if payment else None,
            exchange_invoice=InvoiceOut.model_validate(exchange_invoice) if exchange_invoice else None
        )

    # Review

    def get_return(self, return_id: UUID) -> ProductReturn:
        product_return = self.db.query(ProductReturn).filter(ProductReturn.id == return_id).first()
        if not product_return:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Return not found"
            )
        return product_return

    def list_returns(
        self,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[ReturnStatus] = None,
        search: Optional[str] = None
    ) -> ReturnList:
        query = self.db.query(ProductReturn).outerjoin(
            Customer, ProductReturn.customer_id == Customer.id
        )
        if status_filter:
            query = query.filter(ProductReturn.status == status_filter)
        if search:
            term = f"%{escape_like(search)}%"
            query = query.filter(or_(
                ProductReturn.reason.ilike(term, escape="\\"),
                Customer.name.ilike(term, escape="\\")
            ))

        total = query.count()
        returns = (
            query.options(
                selectinload(ProductReturn.customer),
                selectinload(ProductReturn.invoice),
                selectinload(ProductReturn.product),
                selectinload(ProductReturn.exchange_product)
            )
            .order_by(desc(ProductReturn.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return ReturnList(returns=returns, total=total, limit=limit, offset=offset)

    def update_return_status(self, return_id: UUID, update: ReturnStatusUpdate) -> ProductReturn:
        product_return = self.get_return(return_id)
        current = ReturnStatus(product_return.status)

        if update.status not in STATUS_TRANSITIONS[current]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change a {current.value} return to {update.status.value}"
            )

        product_return.status = update.status
        if update.admin_notes:
            product_return.admin_notes = update.admin_notes
        self.db.commit()
        self.db.refresh(product_return)
        logger.info(f"Return {return_id} moved from {current.value} to {update.status.value}")
        return product_return

    # Flow

    def advance_flow(self, state: ReturnFlowState, action: FlowAction) -> ReturnFlowState:
        """
        Apply a screen action after checking the selection exists and
        belongs to the chosen customer.
        """
        if action.type == FlowActionType.SELECT_CUSTOMER and action.customer_id:
            CustomerService(self.db).get_customer(action.customer_id)

        if action.type == FlowActionType.SELECT_INVOICE and action.invoice_id and state.customer_id:
            invoice_ids = {inv.id for inv in self.get_customer_invoices(state.customer_id)}
            if action.invoice_id not in invoice_ids:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Invoice not found for this customer"
                )

        try:
            return transition(state, action)
        except InvalidTransition as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )

    # Helpers

    def _get_sales_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update()
        invoice = query.first()

        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        if invoice.invoice_type != InvoiceType.SALES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only sales invoices can be returned"
            )
        return invoice

    def _items_of(self, invoice: Invoice) -> List[InvoiceItem]:
        return (
            self.db.query(InvoiceItem)
            .filter(InvoiceItem.invoice_id == invoice.id)
            .order_by(InvoiceItem.created_at, InvoiceItem.product_name)
            .all()
        )

    def _returned_by_product(self, invoice_id: UUID) -> Dict[UUID, int]:
        rows = (
            self.db.query(ProductReturn.product_id, func.sum(ProductReturn.quantity))
            .filter(ProductReturn.invoice_id == invoice_id)
            .group_by(ProductReturn.product_id)
            .all()
        )
        return {product_id: int(total or 0) for product_id, total in rows}

    def _resolve_item(
        self,
        invoice: Invoice,
        item_id: Optional[UUID]
    ) -> Tuple[Optional[InvoiceItem], int]:
        """Selected line and its remaining returnable quantity."""
        if item_id is None:
            return None, 0

        item = (
            self.db.query(InvoiceItem)
            .filter(InvoiceItem.id == item_id, InvoiceItem.invoice_id == invoice.id)
            .first()
        )
        if not item:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice item not found on this invoice"
            )

        returned = self._returned_by_product(invoice.id)
        remaining = ReturnCalculator.remaining_quantities(
            [(item.id, item.product_id, item.quantity)], returned
        )
        return item, remaining[item.id]

    def _resolve_exchange_product(self, request: ReturnRequest) -> Optional[Product]:
        if request.return_type != ReturnType.EXCHANGE or request.exchange_product_id is None:
            return None
        return ProductService(self.db).get_product(request.exchange_product_id)

    def _lock_product(self, product_id: UUID) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .first()
        )
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found"
            )
        return product

    def _lock_products(self, product_ids: List[Optional[UUID]]) -> Dict[UUID, Product]:
        """Lock product rows in ascending id order."""
        return {
            product_id: self._lock_product(product_id)
            for product_id in sorted({pid for pid in product_ids if pid is not None})
        }

    def _build_quote(
        self,
        item: Optional[InvoiceItem],
        max_quantity: int,
        request: ReturnRequest,
        exchange_product: Optional[Product]
    ) -> ReturnQuote:
        return_fees = money(request.return_fees)
        refund = ZERO
        if item is not None:
            refund = ReturnCalculator.refund_amount(item.unit_price, request.quantity, max_quantity)

        exchange_amount = ZERO
        price_difference = ZERO
        same_product = False
        if exchange_product is not None:
            same_product = item is not None and exchange_product.id == item.product_id
            exchange_amount = ReturnCalculator.exchange_amount(exchange_product.selling_price, request.quantity)
            price_difference = ReturnCalculator.price_difference(
                exchange_amount, refund, return_fees, same_product
            )

        error = ReturnCalculator.validate(
            item_selected=item is not None,
            requested_quantity=request.quantity,
            max_return_quantity=max_quantity,
            return_type=request.return_type,
            exchange_stock=exchange_product.quantity if exchange_product is not None else None
        )

        net_refund = money(refund - return_fees) if request.return_type == ReturnType.REFUND else ZERO

        return ReturnQuote(
            max_return_quantity=max_quantity,
            refund_amount=refund,
            return_fees=return_fees,
            net_refund=max(net_refund, ZERO),
            exchange_amount=exchange_amount,
            price_difference=price_difference,
            same_product=same_product,
            settlement=ReturnCalculator.settlement(request.return_type, price_difference),
            error=error
        )

    def _create_exchange_invoice(
        self,
        invoice: Invoice,
        product_return: ProductReturn,
        exchange_product: Product,
        quantity: int,
        quote: ReturnQuote
    ) -> Invoice:
        """Follow-up invoice for the amount still owed on an exchange."""
        exchange_invoice = Invoice(
            invoice_number=generate_invoice_number(self.db, InvoiceType.EXCHANGE),
            customer_id=invoice.customer_id,
            customer_name=invoice.customer_name,
            customer_phone=invoice.customer_phone,
            invoice_type=InvoiceType.EXCHANGE,
            status=InvoiceStatus.PENDING,
            subtotal=quote.price_difference,
            total_amount=quote.price_difference,
            remaining_amount=quote.price_difference,
            notes=f"Exchange invoice for return #{product_return.id}"
        )
        self.db.add(exchange_invoice)
        self.db.flush()

        self.db.add(InvoiceItem(
            invoice_id=exchange_invoice.id,
            product_id=exchange_product.id,
            product_name=exchange_product.name,
            quantity=quantity,
            unit_price=exchange_product.selling_price,
            total_price=money(Decimal(exchange_product.selling_price) * quantity)
        ))
        return exchange_invoice
