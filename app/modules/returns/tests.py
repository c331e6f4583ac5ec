"""
Tests for the returns module

Covers:
- Refund and price difference arithmetic
- Return screen state transitions
- Returnable quantities and prior returns
- Refunds, exchanges and store credit outcomes
- Atomic writes and repeated submissions
- Out of date schema on the returns table
- Review workflow and HTTP endpoints
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException
from sqlalchemy.exc import ProgrammingError, OperationalError

from app.main import app
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext, UserRole
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceType, InvoiceStatus, Payment
from app.modules.products.models import ProductHistory
from app.modules.returns.calculator import ReturnCalculator
from app.modules.returns.flow import (
    ReturnFlowState, FlowAction, FlowActionType, FlowStep, InvalidTransition, transition
)
from app.modules.returns.models import ProductReturn, ReturnType, ReturnStatus
from app.modules.returns.schemas import ReturnRequest, ReturnStatusUpdate, RefundMethod, Settlement
from app.modules.returns.service import ReturnService, MIGRATION_NOTICE


# ===== FIXTURES =====

@pytest.fixture
def bulb_sale(make_customer, make_product, make_sales_invoice):
    """One invoice line: 10 x Bulb-9W at 5.00"""
    customer = make_customer()
    bulb = make_product(name="Bulb-9W", quantity=40, selling_price="5.00")
    invoice = make_sales_invoice(customer, [(bulb, 10, "5.00")])
    return customer, bulb, invoice


@pytest.fixture
def lamp(make_product):
    return make_product(name="Desk Lamp", quantity=5, selling_price="8.00")


def refund_request(item_id, quantity=3, **kwargs):
    return ReturnRequest(invoice_item_id=item_id, quantity=quantity, return_type=ReturnType.REFUND, **kwargs)


def exchange_request(item_id, product_id, quantity=3, **kwargs):
    return ReturnRequest(
        invoice_item_id=item_id,
        quantity=quantity,
        return_type=ReturnType.EXCHANGE,
        exchange_product_id=product_id,
        **kwargs
    )


# ===== CALCULATOR =====

class TestReturnCalculator:

    def test_remaining_quantities_subtract_prior_returns(self):
        item_a, item_b, product_a, product_b = uuid4(), uuid4(), uuid4(), uuid4()
        remaining = ReturnCalculator.remaining_quantities(
            [(item_a, product_a, 10), (item_b, product_b, 4)],
            {product_a: 3}
        )
        assert remaining == {item_a: 7, item_b: 4}

    def test_remaining_quantities_never_negative(self):
        item, product = uuid4(), uuid4()
        assert ReturnCalculator.remaining_quantities([(item, product, 2)], {product: 5}) == {item: 0}

    def test_refund_amount(self):
        assert ReturnCalculator.refund_amount(Decimal("5.00"), 3, 10) == Decimal("15.00")

    def test_refund_amount_capped_at_returnable_quantity(self):
        assert ReturnCalculator.refund_amount(Decimal("5.00"), 12, 10) == Decimal("50.00")

    def test_refund_amount_never_negative(self):
        assert ReturnCalculator.refund_amount(Decimal("5.00"), -2, 10) == Decimal("0.00")
        assert ReturnCalculator.refund_amount(Decimal("5.00"), 3, 0) == Decimal("0.00")

    def test_refund_amount_rounds_half_up(self):
        assert ReturnCalculator.refund_amount(Decimal("3.335"), 1, 5) == Decimal("3.34")

    def test_price_difference_customer_owes(self):
        diff = ReturnCalculator.price_difference(Decimal("24.00"), Decimal("15.00"), Decimal("0"), False)
        assert diff == Decimal("9.00")

    def test_price_difference_includes_fees(self):
        diff = ReturnCalculator.price_difference(Decimal("24.00"), Decimal("15.00"), Decimal("2.00"), False)
        assert diff == Decimal("11.00")

    def test_price_difference_store_credit(self):
        diff = ReturnCalculator.price_difference(Decimal("6.00"), Decimal("15.00"), Decimal("0"), False)
        assert diff == Decimal("-9.00")

    def test_same_product_exchange_is_even(self):
        diff = ReturnCalculator.price_difference(Decimal("99.00"), Decimal("15.00"), Decimal("1.00"), True)
        assert diff == Decimal("0.00")

    def test_settlement(self):
        assert ReturnCalculator.settlement(ReturnType.REFUND, Decimal("0")) == Settlement.REFUND
        assert ReturnCalculator.settlement(ReturnType.EXCHANGE, Decimal("9.00")) == Settlement.CUSTOMER_OWES
        assert ReturnCalculator.settlement(ReturnType.EXCHANGE, Decimal("-1.00")) == Settlement.STORE_CREDIT
        assert ReturnCalculator.settlement(ReturnType.EXCHANGE, Decimal("0.00")) == Settlement.EVEN

    def test_validate_requires_item(self):
        error = ReturnCalculator.validate(False, 0, 0, ReturnType.REFUND)
        assert error == "Please select a product to return"

    def test_validate_quantity_bounds(self):
        assert ReturnCalculator.validate(True, 12, 10, ReturnType.REFUND) == "Return quantity must be between 1 and 10"
        assert ReturnCalculator.validate(True, 0, 10, ReturnType.REFUND) == "Return quantity must be between 1 and 10"

    def test_validate_exchange_product_required(self):
        error = ReturnCalculator.validate(True, 3, 10, ReturnType.EXCHANGE, exchange_stock=None)
        assert error == "Please select an exchange product"

    def test_validate_exchange_stock(self):
        error = ReturnCalculator.validate(True, 3, 10, ReturnType.EXCHANGE, exchange_stock=2)
        assert error == "Only 2 units available for exchange"

    def test_validate_ignores_fees(self):
        assert ReturnCalculator.validate(True, 1, 10, ReturnType.REFUND) is None

    def test_validate_ok(self):
        assert ReturnCalculator.validate(True, 3, 10, ReturnType.EXCHANGE, exchange_stock=3) is None
        assert ReturnCalculator.validate(True, 10, 10, ReturnType.REFUND) is None


# ===== FLOW =====

class TestReturnFlow:

    def test_starts_at_customer_selection(self):
        state = ReturnFlowState()
        assert state.step == FlowStep.SELECT_CUSTOMER
        assert state.customer_id is None
        assert state.invoice_id is None

    def test_forward_path(self):
        customer_id, invoice_id = uuid4(), uuid4()
        state = transition(ReturnFlowState(), FlowAction(type=FlowActionType.SELECT_CUSTOMER, customer_id=customer_id))
        assert state.step == FlowStep.SELECT_INVOICE
        assert state.customer_id == customer_id

        state = transition(state, FlowAction(type=FlowActionType.SELECT_INVOICE, invoice_id=invoice_id))
        assert state.step == FlowStep.CONFIGURE_RETURN
        assert state.customer_id == customer_id
        assert state.invoice_id == invoice_id

    def test_back_clears_downstream_selection(self):
        customer_id = uuid4()
        state = ReturnFlowState(step=FlowStep.CONFIGURE_RETURN, customer_id=customer_id, invoice_id=uuid4())

        state = transition(state, FlowAction(type=FlowActionType.BACK))
        assert state.step == FlowStep.SELECT_INVOICE
        assert state.customer_id == customer_id
        assert state.invoice_id is None

        state = transition(state, FlowAction(type=FlowActionType.BACK))
        assert state == ReturnFlowState()

    def test_back_on_first_step_fails(self):
        with pytest.raises(InvalidTransition):
            transition(ReturnFlowState(), FlowAction(type=FlowActionType.BACK))

    def test_cannot_skip_steps(self):
        with pytest.raises(InvalidTransition):
            transition(ReturnFlowState(), FlowAction(type=FlowActionType.SELECT_INVOICE, invoice_id=uuid4()))

    def test_selection_needs_an_id(self):
        with pytest.raises(InvalidTransition):
            transition(ReturnFlowState(), FlowAction(type=FlowActionType.SELECT_CUSTOMER))

    def test_reset(self):
        state = ReturnFlowState(step=FlowStep.CONFIGURE_RETURN, customer_id=uuid4(), invoice_id=uuid4())
        assert transition(state, FlowAction(type=FlowActionType.RESET)) == ReturnFlowState()


# ===== LOOKUP =====

class TestReturnLookup:

    def test_search_customers_needs_two_characters(self, db_session, make_customer):
        make_customer(name="Ana Lopez")
        service = ReturnService(db_session)
        assert service.search_customers("a") == []
        assert [c.name for c in service.search_customers("an")] == ["Ana Lopez"]

    def test_search_customers_matches_name_phone_or_email(self, db_session, make_customer):
        make_customer(name="Ana Lopez", phone="5550001111")
        make_customer(name="Bruno Diaz", phone="5559998888", email="bruno@example.com")
        service = ReturnService(db_session)

        assert [c.name for c in service.search_customers("999")] == ["Bruno Diaz"]
        assert [c.name for c in service.search_customers("SHOP.TEST")] == ["Bruno Diaz"]
        assert [c.name for c in service.search_customers("lopez")] == ["Ana Lopez"]

    def test_search_customers_capped_at_ten(self, db_session, make_customer):
        for i in range(12):
            make_customer(name=f"Carla {i:02d}", phone=f"55500000{i:02d}")
        assert len(ReturnService(db_session).search_customers("carla")) == 10

    def test_customer_invoices_are_sales_with_items_newest_first(
        self, db_session, make_customer, make_product, make_sales_invoice
    ):
        customer = make_customer()
        bulb = make_product()
        now = datetime.utcnow()
        older = make_sales_invoice(customer, [(bulb, 1, "5.00")], created_at=now - timedelta(days=3))
        newer = make_sales_invoice(customer, [(bulb, 2, "5.00")], created_at=now - timedelta(days=1))
        make_sales_invoice(customer, [], created_at=now)

        addition = Invoice(
            invoice_number="ADD-000001",
            customer_id=customer.id,
            invoice_type=InvoiceType.PRODUCT_ADDITION,
            status=InvoiceStatus.PAID
        )
        db_session.add(addition)
        db_session.flush()
        db_session.add(InvoiceItem(
            invoice_id=addition.id, product_id=bulb.id, product_name=bulb.name,
            quantity=5, unit_price=Decimal("3.00"), total_price=Decimal("15.00")
        ))
        db_session.commit()

        invoices = ReturnService(db_session).get_customer_invoices(customer.id)
        assert [inv.id for inv in invoices] == [newer.id, older.id]

    def test_customer_invoices_unknown_customer(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).get_customer_invoices(uuid4())
        assert exc_info.value.status_code == 404

    def test_exchange_products_only_in_stock(self, db_session, make_product):
        make_product(name="Lamp A", quantity=3)
        make_product(name="Lamp B", quantity=0)
        products = ReturnService(db_session).search_exchange_products("lamp")
        assert [p.name for p in products] == ["Lamp A"]


# ===== RETURNABLE ITEMS =====

class TestReturnableItems:

    def test_full_quantity_without_prior_returns(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        result = ReturnService(db_session).get_returnable_items(invoice.id)

        assert result.notices == []
        assert len(result.items) == 1
        item = result.items[0]
        assert item.product_id == bulb.id
        assert item.quantity == 10
        assert item.already_returned == 0
        assert item.max_return_quantity == 10

    def test_prior_returns_reduce_max_quantity(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        service = ReturnService(db_session)
        service.process_return(invoice.id, refund_request(invoice.items[0].id, quantity=4))

        item = service.get_returnable_items(invoice.id).items[0]
        assert item.already_returned == 4
        assert item.max_return_quantity == 6

        with pytest.raises(HTTPException) as exc_info:
            service.process_return(invoice.id, refund_request(invoice.items[0].id, quantity=7))
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Return quantity must be between 1 and 6"

    def test_fully_returned_lines_are_hidden(self, db_session, make_customer, make_product, make_sales_invoice):
        customer = make_customer()
        bulb = make_product(name="Bulb-9W")
        cable = make_product(name="Cable 2m")
        invoice = make_sales_invoice(customer, [(bulb, 2, "5.00"), (cable, 1, "3.00")])
        cable_item = next(i for i in invoice.items if i.product_id == cable.id)

        service = ReturnService(db_session)
        service.process_return(invoice.id, refund_request(cable_item.id, quantity=1))

        items = service.get_returnable_items(invoice.id).items
        assert [i.product_name for i in items] == ["Bulb-9W"]

    def test_missing_column_is_treated_as_no_prior_returns(self, db_session, bulb_sale, monkeypatch):
        _, _, invoice = bulb_sale

        def out_of_date(self, invoice_id):
            raise ProgrammingError(
                "SELECT product_returns.product_id", {},
                Exception('column product_returns.condition does not exist')
            )

        monkeypatch.setattr(ReturnService, "_returned_by_product", out_of_date)
        result = ReturnService(db_session).get_returnable_items(invoice.id)

        assert result.notices == [MIGRATION_NOTICE]
        assert result.items[0].max_return_quantity == 10

    def test_sqlite_missing_column_is_also_detected(self, db_session, bulb_sale, monkeypatch):
        _, _, invoice = bulb_sale

        def out_of_date(self, invoice_id):
            raise OperationalError(
                "SELECT product_returns.product_id", {},
                Exception("no such column: product_returns.condition")
            )

        monkeypatch.setattr(ReturnService, "_returned_by_product", out_of_date)
        result = ReturnService(db_session).get_returnable_items(invoice.id)
        assert result.notices == [MIGRATION_NOTICE]

    def test_other_database_errors_fail_the_lookup(self, db_session, bulb_sale, monkeypatch):
        _, _, invoice = bulb_sale

        def broken(self, invoice_id):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(ReturnService, "_returned_by_product", broken)
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).get_returnable_items(invoice.id)
        assert exc_info.value.status_code == 500
        assert "database is locked" in exc_info.value.detail

    def test_only_sales_invoices(self, db_session):
        invoice = Invoice(
            invoice_number="ADD-000009",
            invoice_type=InvoiceType.PRODUCT_ADDITION,
            status=InvoiceStatus.PAID
        )
        db_session.add(invoice)
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).get_returnable_items(invoice.id)
        assert exc_info.value.status_code == 400

    def test_unknown_invoice(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).get_returnable_items(uuid4())
        assert exc_info.value.status_code == 404


# ===== REFUNDS =====

class TestRefunds:

    def test_refund_three_bulbs(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        result = ReturnService(db_session).process_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=3)
        )

        assert result.quote.refund_amount == Decimal("15.00")
        assert result.product_return.refund_amount == Decimal("15.00")
        assert result.product_return.total_amount == Decimal("15.00")
        assert result.payment.amount == Decimal("-15.00")
        assert result.payment.payment_method == "original"
        assert result.payment.notes == f"Refund for return #{result.product_return.id}"
        assert result.exchange_invoice is None

        db_session.refresh(bulb)
        assert bulb.quantity == 43

        history = db_session.query(ProductHistory).filter(
            ProductHistory.product_id == bulb.id,
            ProductHistory.action_type == "return"
        ).all()
        assert len(history) == 1
        assert history[0].quantity == 3
        assert history[0].notes == f"Returned from invoice #{invoice.invoice_number}"

    def test_refund_writes_exactly_one_negative_payment(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        ReturnService(db_session).process_return(
            invoice.id,
            refund_request(invoice.items[0].id, quantity=2, return_fees=Decimal("1.50"),
                           payment_method=RefundMethod.CASH)
        )

        payments = db_session.query(Payment).filter(Payment.invoice_id == invoice.id).all()
        assert len(payments) == 1
        assert payments[0].amount == Decimal("-8.50")
        assert payments[0].payment_method == "cash"

        product_return = db_session.query(ProductReturn).one()
        assert product_return.refund_amount == Decimal("8.50")
        assert product_return.return_fees == Decimal("1.50")

    def test_fees_equal_to_refund_write_no_payment(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        result = ReturnService(db_session).process_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=1, return_fees=Decimal("5.00"))
        )
        assert result.payment is None
        assert result.product_return.refund_amount == Decimal("0.00")

    def test_fees_above_refund_clamp_to_zero(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        result = ReturnService(db_session).process_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=1, return_fees=Decimal("6.00"))
        )

        assert result.quote.error is None
        assert result.quote.net_refund == Decimal("0.00")
        assert result.product_return.refund_amount == Decimal("0.00")
        assert result.payment is None
        assert db_session.query(Payment).filter(Payment.invoice_id == invoice.id).count() == 0

        db_session.refresh(bulb)
        assert bulb.quantity == 41

    def test_quantity_above_invoice_is_rejected_without_writes(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(
                invoice.id, refund_request(invoice.items[0].id, quantity=12)
            )
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Return quantity must be between 1 and 10"

        assert db_session.query(ProductReturn).count() == 0
        assert db_session.query(Payment).count() == 0
        db_session.refresh(bulb)
        assert bulb.quantity == 40

    def test_missing_item_is_rejected(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(invoice.id, ReturnRequest(quantity=1))
        assert exc_info.value.detail == "Please select a product to return"

    def test_item_of_another_invoice(self, db_session, bulb_sale, make_sales_invoice):
        customer, bulb, invoice = bulb_sale
        other = make_sales_invoice(customer, [(bulb, 1, "5.00")])
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(invoice.id, refund_request(other.items[0].id, quantity=1))
        assert exc_info.value.status_code == 404

    def test_blank_fields_get_placeholders(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        result = ReturnService(db_session).process_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=1, reason="", admin_notes=None)
        )
        product_return = result.product_return
        assert product_return.reason == "No reason provided"
        assert product_return.admin_notes == "No additional notes"
        assert product_return.condition == "good"
        assert product_return.status == ReturnStatus.PENDING

    def test_resubmitting_records_a_second_return(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        service = ReturnService(db_session)
        request = refund_request(invoice.items[0].id, quantity=3)

        first = service.process_return(invoice.id, request)
        second = service.process_return(invoice.id, request)

        assert first.product_return.id != second.product_return.id
        assert db_session.query(ProductReturn).count() == 2
        assert db_session.query(Payment).filter(Payment.invoice_id == invoice.id).count() == 2
        db_session.refresh(bulb)
        assert bulb.quantity == 46
        assert service.get_returnable_items(invoice.id).items[0].max_return_quantity == 4


# ===== EXCHANGES =====

class TestExchanges:

    def test_product_rows_are_locked_in_id_order(self, db_session, bulb_sale, lamp, monkeypatch):
        _, bulb, invoice = bulb_sale
        locked = []
        original_lock = ReturnService._lock_product

        def recording_lock(self, product_id):
            locked.append(product_id)
            return original_lock(self, product_id)

        monkeypatch.setattr(ReturnService, "_lock_product", recording_lock)
        ReturnService(db_session).process_return(
            invoice.id, exchange_request(invoice.items[0].id, lamp.id, quantity=1)
        )

        assert locked == sorted([bulb.id, lamp.id])

    def test_same_product_exchange_locks_once(self, db_session, bulb_sale, monkeypatch):
        _, bulb, invoice = bulb_sale
        locked = []
        original_lock = ReturnService._lock_product

        def recording_lock(self, product_id):
            locked.append(product_id)
            return original_lock(self, product_id)

        monkeypatch.setattr(ReturnService, "_lock_product", recording_lock)
        ReturnService(db_session).process_return(
            invoice.id, exchange_request(invoice.items[0].id, bulb.id, quantity=2)
        )

        assert locked == [bulb.id]

    def test_exchange_for_pricier_product(self, db_session, bulb_sale, lamp):
        _, bulb, invoice = bulb_sale
        result = ReturnService(db_session).process_return(
            invoice.id, exchange_request(invoice.items[0].id, lamp.id, quantity=3)
        )

        quote = result.quote
        assert quote.exchange_amount == Decimal("24.00")
        assert quote.refund_amount == Decimal("15.00")
        assert quote.price_difference == Decimal("9.00")
        assert quote.settlement == Settlement.CUSTOMER_OWES

        product_return = result.product_return
        assert product_return.return_type == ReturnType.EXCHANGE
        assert product_return.refund_amount == Decimal("0.00")
        assert product_return.price_difference == Decimal("9.00")
        assert product_return.total_amount == Decimal("9.00")
        assert product_return.exchange_product_id == lamp.id

        exchange_invoice = result.exchange_invoice
        assert exchange_invoice.invoice_type == InvoiceType.EXCHANGE
        assert exchange_invoice.status == InvoiceStatus.PENDING
        assert exchange_invoice.total_amount == Decimal("9.00")
        assert exchange_invoice.customer_id == invoice.customer_id
        assert exchange_invoice.invoice_number.startswith("EXC-")

        items = db_session.query(InvoiceItem).filter(InvoiceItem.invoice_id == exchange_invoice.id).all()
        assert len(items) == 1
        assert items[0].product_id == lamp.id
        assert items[0].quantity == 3
        assert items[0].unit_price == Decimal("8.00")

        db_session.refresh(bulb)
        db_session.refresh(lamp)
        assert bulb.quantity == 43
        assert lamp.quantity == 2

        removed = db_session.query(ProductHistory).filter(
            ProductHistory.product_id == lamp.id,
            ProductHistory.action_type == "remove"
        ).one()
        assert removed.notes == f"Exchanged for returned product from invoice #{invoice.invoice_number}"

        assert db_session.query(Payment).count() == 0

    def test_exchange_for_cheaper_product_is_store_credit(self, db_session, bulb_sale, make_product):
        _, _, invoice = bulb_sale
        cheap = make_product(name="Fuse", quantity=10, selling_price="2.00")

        result = ReturnService(db_session).process_return(
            invoice.id, exchange_request(invoice.items[0].id, cheap.id, quantity=3)
        )

        assert result.quote.price_difference == Decimal("-9.00")
        assert result.quote.settlement == Settlement.STORE_CREDIT
        assert result.product_return.payment_method == "none"
        assert result.product_return.total_amount == Decimal("-9.00")
        assert result.exchange_invoice is None
        assert result.payment is None
        assert db_session.query(Invoice).filter(Invoice.invoice_type == InvoiceType.EXCHANGE).count() == 0

    def test_same_product_exchange_is_free(self, db_session, bulb_sale):
        _, bulb, invoice = bulb_sale
        bulb.selling_price = Decimal("7.00")
        db_session.commit()

        result = ReturnService(db_session).process_return(
            invoice.id, exchange_request(invoice.items[0].id, bulb.id, quantity=3)
        )

        assert result.quote.same_product is True
        assert result.quote.price_difference == Decimal("0.00")
        assert result.quote.settlement == Settlement.EVEN
        assert result.exchange_invoice is None

        db_session.refresh(bulb)
        assert bulb.quantity == 40
        actions = sorted(
            h.action_type for h in
            db_session.query(ProductHistory).filter(ProductHistory.product_id == bulb.id).all()
        )
        assert actions == ["remove", "return"]

    def test_exchange_needs_enough_stock(self, db_session, bulb_sale, make_product):
        _, bulb, invoice = bulb_sale
        scarce = make_product(name="Desk Lamp", quantity=2, selling_price="8.00")

        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(
                invoice.id, exchange_request(invoice.items[0].id, scarce.id, quantity=3)
            )
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Only 2 units available for exchange"

        db_session.refresh(bulb)
        assert bulb.quantity == 40

    def test_exchange_needs_a_product(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(
                invoice.id,
                ReturnRequest(invoice_item_id=invoice.items[0].id, quantity=1, return_type=ReturnType.EXCHANGE)
            )
        assert exc_info.value.detail == "Please select an exchange product"

    def test_failure_midway_leaves_nothing_behind(self, db_session, bulb_sale, lamp, monkeypatch):
        _, bulb, invoice = bulb_sale

        def fail(*args, **kwargs):
            raise RuntimeError("invoice store unavailable")

        monkeypatch.setattr(ReturnService, "_create_exchange_invoice", fail)

        with pytest.raises(HTTPException) as exc_info:
            ReturnService(db_session).process_return(
                invoice.id, exchange_request(invoice.items[0].id, lamp.id, quantity=3)
            )
        assert exc_info.value.status_code == 500
        assert "invoice store unavailable" in exc_info.value.detail

        assert db_session.query(ProductReturn).count() == 0
        assert db_session.query(ProductHistory).count() == 0
        db_session.refresh(bulb)
        db_session.refresh(lamp)
        assert bulb.quantity == 40
        assert lamp.quantity == 5


# ===== QUOTES =====

class TestQuotes:

    def test_quote_writes_nothing(self, db_session, bulb_sale, lamp):
        _, _, invoice = bulb_sale
        quote = ReturnService(db_session).quote_return(
            invoice.id, exchange_request(invoice.items[0].id, lamp.id, quantity=3)
        )
        assert quote.price_difference == Decimal("9.00")
        assert quote.error is None
        assert db_session.query(ProductReturn).count() == 0

    def test_quote_reports_validation_error(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        quote = ReturnService(db_session).quote_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=12)
        )
        assert quote.error == "Return quantity must be between 1 and 10"
        assert quote.refund_amount == Decimal("50.00")
        assert quote.max_return_quantity == 10


# ===== REVIEW =====

class TestReturnReview:

    def test_status_moves_forward(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        service = ReturnService(db_session)
        created = service.process_return(invoice.id, refund_request(invoice.items[0].id, quantity=1))
        return_id = created.product_return.id

        approved = service.update_return_status(return_id, ReturnStatusUpdate(status=ReturnStatus.APPROVED))
        assert approved.status == ReturnStatus.APPROVED

        completed = service.update_return_status(
            return_id, ReturnStatusUpdate(status=ReturnStatus.COMPLETED, admin_notes="Refunded at counter")
        )
        assert completed.status == ReturnStatus.COMPLETED
        assert completed.admin_notes == "Refunded at counter"

        with pytest.raises(HTTPException) as exc_info:
            service.update_return_status(return_id, ReturnStatusUpdate(status=ReturnStatus.REJECTED))
        assert exc_info.value.status_code == 400

    def test_pending_cannot_jump_to_completed(self, db_session, bulb_sale):
        _, _, invoice = bulb_sale
        service = ReturnService(db_session)
        created = service.process_return(invoice.id, refund_request(invoice.items[0].id, quantity=1))

        with pytest.raises(HTTPException) as exc_info:
            service.update_return_status(
                created.product_return.id, ReturnStatusUpdate(status=ReturnStatus.COMPLETED)
            )
        assert exc_info.value.status_code == 400

    def test_list_newest_first_with_filters(self, db_session, bulb_sale, make_customer, make_product, make_sales_invoice):
        _, _, invoice = bulb_sale
        other_customer = make_customer(name="Bruno Diaz", phone="5559998888")
        cable = make_product(name="Cable 2m")
        other_invoice = make_sales_invoice(other_customer, [(cable, 2, "3.00")])

        service = ReturnService(db_session)
        first = service.process_return(
            invoice.id, refund_request(invoice.items[0].id, quantity=1, reason="Flickers")
        ).product_return
        second = service.process_return(
            other_invoice.id, refund_request(other_invoice.items[0].id, quantity=1, reason="Too short")
        ).product_return

        now = datetime.utcnow()
        db_session.get(ProductReturn, first.id).created_at = now - timedelta(hours=2)
        db_session.get(ProductReturn, second.id).created_at = now - timedelta(hours=1)
        db_session.commit()

        everything = service.list_returns()
        assert everything.total == 2
        assert [r.id for r in everything.returns] == [second.id, first.id]
        assert everything.returns[0].customer_name == "Bruno Diaz"
        assert everything.returns[0].product_name == "Cable 2m"

        by_reason = service.list_returns(search="flick")
        assert [r.id for r in by_reason.returns] == [first.id]

        by_customer = service.list_returns(search="bruno")
        assert [r.id for r in by_customer.returns] == [second.id]

        service.update_return_status(first.id, ReturnStatusUpdate(status=ReturnStatus.APPROVED))
        approved = service.list_returns(status_filter=ReturnStatus.APPROVED)
        assert [r.id for r in approved.returns] == [first.id]


# ===== API =====

class TestReturnsAPI:

    def test_returnable_items_endpoint(self, client, bulb_sale):
        _, _, invoice = bulb_sale
        response = client.get(f"/returns/invoices/{invoice.id}/items")
        assert response.status_code == 200
        data = response.json()
        assert data["invoice"]["invoice_number"] == invoice.invoice_number
        assert data["items"][0]["max_return_quantity"] == 10
        assert data["notices"] == []

    def test_process_refund_endpoint(self, client, bulb_sale):
        _, _, invoice = bulb_sale
        response = client.post(
            f"/returns/invoices/{invoice.id}",
            json={"invoice_item_id": str(invoice.items[0].id), "quantity": 3, "return_type": "refund"}
        )
        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["product_return"]["refund_amount"]) == Decimal("15.00")
        assert Decimal(data["payment"]["amount"]) == Decimal("-15.00")

    def test_process_rejects_excess_quantity(self, client, bulb_sale):
        _, _, invoice = bulb_sale
        response = client.post(
            f"/returns/invoices/{invoice.id}",
            json={"invoice_item_id": str(invoice.items[0].id), "quantity": 12, "return_type": "refund"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Return quantity must be between 1 and 10"

    def test_quote_endpoint(self, client, bulb_sale, lamp):
        _, _, invoice = bulb_sale
        response = client.post(
            f"/returns/invoices/{invoice.id}/quote",
            json={
                "invoice_item_id": str(invoice.items[0].id),
                "quantity": 3,
                "return_type": "exchange",
                "exchange_product_id": str(lamp.id)
            }
        )
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["price_difference"]) == Decimal("9.00")
        assert data["settlement"] == "customer_owes"

    def test_customer_search_endpoint(self, client, make_customer):
        make_customer(name="Ana Lopez")
        response = client.get("/returns/customers", params={"q": "ana"})
        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Ana Lopez"]

    def test_flow_endpoint(self, client, bulb_sale, make_customer):
        customer, _, invoice = bulb_sale

        response = client.post("/returns/flow/transition", json={
            "action": {"type": "select_customer", "customer_id": str(customer.id)}
        })
        assert response.status_code == 200
        state = response.json()
        assert state["step"] == "select_invoice"

        response = client.post("/returns/flow/transition", json={
            "state": state,
            "action": {"type": "select_invoice", "invoice_id": str(invoice.id)}
        })
        assert response.status_code == 200
        assert response.json()["step"] == "configure_return"

        stranger = make_customer(name="Bruno Diaz", phone="5559998888")
        response = client.post("/returns/flow/transition", json={
            "state": {"step": "select_invoice", "customer_id": str(stranger.id)},
            "action": {"type": "select_invoice", "invoice_id": str(invoice.id)}
        })
        assert response.status_code == 404

    def test_flow_endpoint_rejects_back_on_first_step(self, client):
        response = client.post("/returns/flow/transition", json={"action": {"type": "back"}})
        assert response.status_code == 400

    def test_status_update_requires_manager(self, client, bulb_sale):
        _, _, invoice = bulb_sale
        created = client.post(
            f"/returns/invoices/{invoice.id}",
            json={"invoice_item_id": str(invoice.items[0].id), "quantity": 1}
        ).json()

        app.dependency_overrides[AuthDependencies.get_auth_context] = lambda: AuthContext(
            user_id=uuid4(), user_role=UserRole.CASHIER
        )
        response = client.patch(
            f"/returns/{created['product_return']['id']}/status", json={"status": "approved"}
        )
        assert response.status_code == 403
