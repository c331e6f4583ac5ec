"""
Tests for the invoices module: checkout totals, sales and payments
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.customers.models import Customer
from app.modules.invoices.calculator import SaleCalculator, money
from app.modules.invoices.models import DiscountType, InvoiceStatus, InvoiceType, Payment
from app.modules.invoices.schemas import SaleCreate, SaleLineCreate, PaymentCreate, PaymentMethod
from app.modules.invoices.service import InvoiceService
from app.modules.products.models import ProductHistory


class TestSaleCalculator:

    def test_money_rounds_half_up(self):
        assert money(Decimal("2.345")) == Decimal("2.35")
        assert money(Decimal("2.344")) == Decimal("2.34")

    def test_percentage_line_discount(self):
        totals = SaleCalculator.line_totals(2, Decimal("5.00"), Decimal("10"), DiscountType.PERCENTAGE)
        assert totals.subtotal == Decimal("10.00")
        assert totals.discount_amount == Decimal("1.00")
        assert totals.total_price == Decimal("9.00")

    def test_fixed_discount_capped_at_line(self):
        totals = SaleCalculator.line_totals(1, Decimal("8.00"), Decimal("20"), DiscountType.FIXED)
        assert totals.discount_amount == Decimal("8.00")
        assert totals.total_price == Decimal("0.00")

    def test_cart_discount_then_tax(self):
        totals = SaleCalculator.calculate(
            [
                (2, Decimal("5.00"), Decimal("10"), DiscountType.PERCENTAGE),
                (1, Decimal("4.00"), Decimal("0"), DiscountType.PERCENTAGE),
            ],
            discount_value=Decimal("1.00"),
            discount_type=DiscountType.FIXED,
            tax_rate=Decimal("10"),
            advance_payment=Decimal("5.00")
        )
        assert totals.subtotal == Decimal("13.00")
        assert totals.discount_amount == Decimal("1.00")
        assert totals.tax_amount == Decimal("1.20")
        assert totals.total_amount == Decimal("13.20")
        assert totals.remaining_amount == Decimal("8.20")
        assert totals.status == InvoiceStatus.PARTIALLY_PAID

    def test_payment_status(self):
        assert SaleCalculator.payment_status(Decimal("10"), Decimal("0")) == InvoiceStatus.UNPAID
        assert SaleCalculator.payment_status(Decimal("10"), Decimal("4")) == InvoiceStatus.PARTIALLY_PAID
        assert SaleCalculator.payment_status(Decimal("10"), Decimal("10")) == InvoiceStatus.PAID

    def test_overpayment_leaves_nothing_remaining(self):
        totals = SaleCalculator.calculate(
            [(1, Decimal("5.00"), Decimal("0"), DiscountType.PERCENTAGE)],
            Decimal("0"), DiscountType.PERCENTAGE, Decimal("0"), Decimal("9.00")
        )
        assert totals.remaining_amount == Decimal("0.00")
        assert totals.status == InvoiceStatus.PAID

    def test_percentage_discount_over_100_rejected(self):
        with pytest.raises(ValidationError):
            SaleCreate(
                lines=[SaleLineCreate(product_id=uuid4(), quantity=1)],
                discount_value=Decimal("150"),
                discount_type=DiscountType.PERCENTAGE
            )


class TestInvoiceService:

    def test_create_sale(self, db_session, make_product):
        bulb = make_product(name="Bulb-9W", quantity=10, selling_price="5.00")
        invoice = InvoiceService(db_session).create_sale(SaleCreate(
            customer_name="Ana Lopez",
            customer_phone="555 000 1111",
            lines=[SaleLineCreate(product_id=bulb.id, quantity=4)],
            advance_payment=Decimal("20.00"),
            payment_method=PaymentMethod.CARD
        ))

        assert invoice.invoice_number == "SALE-000001"
        assert invoice.invoice_type == InvoiceType.SALES
        assert invoice.total_amount == Decimal("20.00")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.remaining_amount == Decimal("0.00")
        assert len(invoice.items) == 1

        customer = db_session.query(Customer).one()
        assert invoice.customer_id == customer.id
        assert customer.phone == "5550001111"

        db_session.refresh(bulb)
        assert bulb.quantity == 6
        sale = db_session.query(ProductHistory).one()
        assert sale.action_type == "sale"
        assert sale.notes == "Sold on invoice #SALE-000001"

        payment = db_session.query(Payment).one()
        assert payment.amount == Decimal("20.00")
        assert payment.payment_method == "card"

    def test_invoice_numbers_are_sequential(self, db_session, make_product):
        bulb = make_product(quantity=10)
        service = InvoiceService(db_session)
        sale = SaleCreate(lines=[SaleLineCreate(product_id=bulb.id, quantity=1)])
        first = service.create_sale(sale)
        second = service.create_sale(sale)
        assert (first.invoice_number, second.invoice_number) == ("SALE-000001", "SALE-000002")

    def test_insufficient_stock_writes_nothing(self, db_session, make_product):
        bulb = make_product(quantity=2)
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).create_sale(SaleCreate(
                lines=[SaleLineCreate(product_id=bulb.id, quantity=3)]
            ))
        assert exc_info.value.status_code == 400
        assert "Available: 2" in exc_info.value.detail["errors"][0]

        db_session.refresh(bulb)
        assert bulb.quantity == 2
        assert db_session.query(ProductHistory).count() == 0

    def test_unknown_product(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).create_sale(SaleCreate(
                lines=[SaleLineCreate(product_id=uuid4(), quantity=1)]
            ))
        assert exc_info.value.status_code == 404

    def test_customer_sales_invoices_skip_empty_ones(
        self, db_session, make_customer, make_product, make_sales_invoice
    ):
        customer = make_customer()
        bulb = make_product()
        now = datetime.utcnow()
        with_items = make_sales_invoice(customer, [(bulb, 1, "5.00")], created_at=now - timedelta(days=1))
        make_sales_invoice(customer, [], created_at=now)

        invoices = InvoiceService(db_session).get_customer_sales_invoices(customer.id)
        assert [inv.id for inv in invoices] == [with_items.id]

    def test_add_payment_settles_invoice(self, db_session, make_product):
        bulb = make_product(quantity=10, selling_price="5.00")
        service = InvoiceService(db_session)
        invoice = service.create_sale(SaleCreate(
            lines=[SaleLineCreate(product_id=bulb.id, quantity=2)],
            advance_payment=Decimal("4.00")
        ))
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

        with pytest.raises(HTTPException) as exc_info:
            service.add_payment(invoice.id, PaymentCreate(amount=Decimal("7.00"), payment_method=PaymentMethod.CASH))
        assert exc_info.value.status_code == 400

        service.add_payment(invoice.id, PaymentCreate(amount=Decimal("6.00"), payment_method=PaymentMethod.CASH))
        detail = service.get_invoice_detail(invoice.id)
        assert detail.status == InvoiceStatus.PAID
        assert detail.remaining_amount == Decimal("0.00")
        assert detail.paid_amount == Decimal("10.00")
        assert len(detail.payments) == 2

        with pytest.raises(HTTPException):
            service.add_payment(invoice.id, PaymentCreate(amount=Decimal("1.00"), payment_method=PaymentMethod.CASH))


class TestInvoicesAPI:

    def test_checkout_and_detail(self, client, make_product):
        bulb = make_product(quantity=10, selling_price="5.00")
        response = client.post("/invoices/sales", json={
            "lines": [{"product_id": str(bulb.id), "quantity": 2, "discount": "10"}],
            "tax_rate": "5"
        })
        assert response.status_code == 201
        invoice = response.json()
        assert Decimal(invoice["total_amount"]) == Decimal("9.45")
        assert invoice["status"] == "unpaid"

        response = client.get(f"/invoices/{invoice['id']}")
        assert response.status_code == 200
        assert response.json()["items"][0]["product_name"] == bulb.name

    def test_list_by_type(self, client, make_customer, make_product, make_sales_invoice):
        make_sales_invoice(make_customer(), [(make_product(), 1, "5.00")])
        response = client.get("/invoices/", params={"invoice_type": "sales"})
        assert response.json()["total"] == 1
        response = client.get("/invoices/", params={"invoice_type": "exchange"})
        assert response.json()["total"] == 0
