from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import desc, exists
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from app.modules.invoices.models import (
    Invoice, InvoiceItem, Payment, InvoiceType, InvoiceStatus
)
from app.modules.invoices.schemas import (
    SaleCreate, PaymentCreate, InvoiceList, InvoiceDetail, InvoiceOut, PaymentOut, InvoiceItemOut
)
from app.modules.invoices.calculator import SaleCalculator, money
from app.modules.invoices.numbering import generate_invoice_number
from app.modules.customers.service import CustomerService
from app.modules.products.models import Product, HistoryAction
from app.modules.products.service import ProductService

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def create_sale(self, sale_data: SaleCreate) -> Invoice:
        """
        Checkout a cart: validate stock, compute totals, write the invoice
        with its items, decrement stock and record the advance payment.
        All in one transaction.
        """
        try:
            products = {}
            for line in sale_data.lines:
                product = products.get(line.product_id) or self.db.query(Product).filter(
                    Product.id == line.product_id
                ).first()
                if not product:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail=f"Product {line.product_id} not found"
                    )
                products[line.product_id] = product

            requested = {}
            for line in sale_data.lines:
                requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
            errors = [
                f"Insufficient stock for {products[pid].name}. Available: {products[pid].quantity}, requested: {qty}"
                for pid, qty in requested.items()
                if products[pid].quantity < qty
            ]
            if errors:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"errors": errors}
                )

            customer = None
            if sale_data.customer_id:
                customer = CustomerService(self.db).get_customer(sale_data.customer_id)
            else:
                customer = CustomerService(self.db).find_or_create(
                    sale_data.customer_name, sale_data.customer_phone
                )

            prices = [
                line.unit_price if line.unit_price is not None else products[line.product_id].selling_price
                for line in sale_data.lines
            ]
            totals = SaleCalculator.calculate(
                [
                    (line.quantity, price, line.discount, line.discount_type)
                    for line, price in zip(sale_data.lines, prices)
                ],
                sale_data.discount_value,
                sale_data.discount_type,
                sale_data.tax_rate,
                sale_data.advance_payment
            )

            invoice = Invoice(
                invoice_number=generate_invoice_number(self.db, InvoiceType.SALES),
                customer_id=customer.id if customer else None,
                customer_name=customer.name if customer else sale_data.customer_name,
                customer_phone=customer.phone if customer else sale_data.customer_phone,
                invoice_type=InvoiceType.SALES,
                status=totals.status,
                subtotal=totals.subtotal,
                discount_amount=totals.discount_amount,
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                advance_payment=money(sale_data.advance_payment),
                remaining_amount=totals.remaining_amount,
                notes=sale_data.notes or f"Discount: {totals.discount_amount}, Tax: {totals.tax_amount}"
            )
            self.db.add(invoice)
            self.db.flush()

            product_service = ProductService(self.db)
            for line, price, line_totals in zip(sale_data.lines, prices, totals.lines):
                product = products[line.product_id]
                self.db.add(InvoiceItem(
                    invoice_id=invoice.id,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=price,
                    discount=line.discount,
                    discount_type=line.discount_type,
                    discount_amount=line_totals.discount_amount,
                    total_price=line_totals.total_price
                ))
                product_service.adjust_quantity(
                    product, -line.quantity, HistoryAction.SALE,
                    f"Sold on invoice #{invoice.invoice_number}"
                )

            if invoice.advance_payment > 0:
                self.db.add(Payment(
                    invoice_id=invoice.id,
                    amount=invoice.advance_payment,
                    payment_method=sale_data.payment_method.value,
                    notes="Advance payment at checkout"
                ))

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Sale {invoice.invoice_number} completed, total {invoice.total_amount}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error processing sale: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error processing sale: {str(e)}"
            )

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.items),
            selectinload(Invoice.payments)
        ).filter(Invoice.id == invoice_id).first()

        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def get_invoice_detail(self, invoice_id: UUID) -> InvoiceDetail:
        invoice = self.get_invoice(invoice_id)
        return InvoiceDetail(
            **InvoiceOut.model_validate(invoice).model_dump(),
            items=[InvoiceItemOut.model_validate(item) for item in invoice.items],
            payments=[PaymentOut.model_validate(p) for p in sorted(invoice.payments, key=lambda p: p.created_at)],
            paid_amount=invoice.paid_amount
        )

    def get_invoices(
        self,
        limit: int = 20,
        offset: int = 0,
        invoice_type: Optional[InvoiceType] = None,
        customer_id: Optional[UUID] = None,
        status_filter: Optional[InvoiceStatus] = None
    ) -> InvoiceList:
        query = self.db.query(Invoice)
        if invoice_type:
            query = query.filter(Invoice.invoice_type == invoice_type)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if status_filter:
            query = query.filter(Invoice.status == status_filter)

        total = query.count()
        invoices = query.order_by(desc(Invoice.created_at)).offset(offset).limit(limit).all()
        return InvoiceList(invoices=invoices, total=total, limit=limit, offset=offset)

    def get_customer_sales_invoices(self, customer_id: UUID) -> List[Invoice]:
        """
        Sales invoices of a customer, newest first, that have at least one item.
        """
        has_items = exists().where(InvoiceItem.invoice_id == Invoice.id)
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.customer_id == customer_id,
                Invoice.invoice_type == InvoiceType.SALES,
                has_items
            )
            .order_by(desc(Invoice.created_at))
            .all()
        )

    def add_payment(self, invoice_id: UUID, payment_data: PaymentCreate) -> Payment:
        """
        Record a payment; settles the remaining amount and updates the status.
        """
        invoice = self.get_invoice(invoice_id)
        if invoice.remaining_amount <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invoice has no outstanding balance"
            )
        if payment_data.amount > invoice.remaining_amount:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Payment exceeds the outstanding balance of {invoice.remaining_amount}"
            )

        payment = Payment(
            invoice_id=invoice.id,
            amount=payment_data.amount,
            payment_method=payment_data.payment_method.value,
            notes=payment_data.notes
        )
        self.db.add(payment)

        invoice.remaining_amount = Decimal(invoice.remaining_amount) - payment_data.amount
        invoice.status = (
            InvoiceStatus.PAID if invoice.remaining_amount <= 0 else InvoiceStatus.PARTIALLY_PAID
        )
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment of {payment.amount} recorded on {invoice.invoice_number}")
        return payment

    def get_invoice_payments(self, invoice_id: UUID) -> List[Payment]:
        self.get_invoice(invoice_id)
        return (
            self.db.query(Payment)
            .filter(Payment.invoice_id == invoice_id)
            .order_by(Payment.created_at)
            .all()
        )
