"""
Tests for the products module
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException

from app.modules.invoices.models import Invoice, InvoiceType, InvoiceStatus
from app.modules.products.models import ProductHistory, HistoryAction
from app.modules.products.schemas import (
    ProductCreate, StockAdjustment, BatchIntakeCreate, BatchIntakeLine
)
from app.modules.products.service import ProductService


class TestProductService:

    def test_create_records_initial_stock(self, db_session):
        product = ProductService(db_session).create_product(
            ProductCreate(name="Bulb-9W", quantity=12, selling_price=Decimal("5.00"))
        )
        history = db_session.query(ProductHistory).filter(ProductHistory.product_id == product.id).all()
        assert len(history) == 1
        assert history[0].action_type == "add"
        assert history[0].quantity == 12
        assert history[0].notes == "Initial stock"

    def test_create_without_stock_has_no_history(self, db_session):
        product = ProductService(db_session).create_product(
            ProductCreate(name="Bulb-9W", selling_price=Decimal("5.00"))
        )
        assert db_session.query(ProductHistory).filter(ProductHistory.product_id == product.id).count() == 0

    def test_duplicate_barcode(self, db_session, make_product):
        make_product(barcode="7700001")
        with pytest.raises(HTTPException) as exc_info:
            ProductService(db_session).create_product(
                ProductCreate(name="Other", barcode="7700001", selling_price=Decimal("1.00"))
            )
        assert exc_info.value.status_code == 409

    def test_adjust_quantity_records_history(self, db_session, make_product):
        product = make_product(quantity=10)
        service = ProductService(db_session)
        service.adjust_quantity(product, -4, HistoryAction.SALE, "Sold on invoice #SALE-000001")
        db_session.commit()

        db_session.refresh(product)
        assert product.quantity == 6
        entry = db_session.query(ProductHistory).one()
        assert entry.quantity == 4
        assert entry.action_type == "sale"

    def test_adjust_quantity_never_goes_negative(self, db_session, make_product):
        product = make_product(quantity=2)
        with pytest.raises(HTTPException) as exc_info:
            ProductService(db_session).adjust_quantity(product, -3, HistoryAction.REMOVE)
        assert exc_info.value.status_code == 400
        assert "Available: 2" in exc_info.value.detail

    def test_apply_adjustment(self, db_session, make_product):
        product = make_product(quantity=5)
        adjusted = ProductService(db_session).apply_adjustment(
            product.id, StockAdjustment(delta=3, notes="Recount")
        )
        assert adjusted.quantity == 8
        assert db_session.query(ProductHistory).one().action_type == "adjustment"

    def test_exchange_candidates_in_stock_only(self, db_session, make_product):
        make_product(name="Lamp A", quantity=1)
        make_product(name="Lamp B", quantity=0)
        make_product(name="Cable", quantity=9)
        names = [p.name for p in ProductService(db_session).search_exchange_candidates("lamp")]
        assert names == ["Lamp A"]

    def test_batch_intake(self, db_session, make_product):
        bulb = make_product(name="Bulb-9W", quantity=2, buying_price="3.00")
        cable = make_product(name="Cable", quantity=0, buying_price="1.50")

        result = ProductService(db_session).batch_intake(BatchIntakeCreate(lines=[
            BatchIntakeLine(product_id=bulb.id, quantity=10),
            BatchIntakeLine(product_id=cable.id, quantity=4, buying_price=Decimal("2.00")),
        ]))

        assert result.invoice_number.startswith("ADD-")
        assert result.total_amount == Decimal("38.00")
        invoice = db_session.get(Invoice, result.invoice_id)
        assert invoice.invoice_type == InvoiceType.PRODUCT_ADDITION
        assert invoice.status == InvoiceStatus.PAID
        assert len(invoice.items) == 2

        db_session.refresh(bulb)
        db_session.refresh(cable)
        assert bulb.quantity == 12
        assert cable.quantity == 4
        assert cable.buying_price == Decimal("2.00")

    def test_batch_intake_unknown_product_rolls_back(self, db_session, make_product):
        bulb = make_product(quantity=2)
        with pytest.raises(HTTPException) as exc_info:
            ProductService(db_session).batch_intake(BatchIntakeCreate(lines=[
                BatchIntakeLine(product_id=bulb.id, quantity=10),
                BatchIntakeLine(product_id=uuid4(), quantity=1),
            ]))
        assert exc_info.value.status_code == 404
        db_session.refresh(bulb)
        assert bulb.quantity == 2
        assert db_session.query(Invoice).count() == 0

    def test_low_stock(self, db_session, make_product):
        make_product(name="Scarce", quantity=1)
        make_product(name="Plenty", quantity=100)
        result = ProductService(db_session).get_low_stock()
        assert [p.name for p in result.products] == ["Scarce"]


class TestProductsAPI:

    def test_create_and_history(self, client):
        response = client.post("/products/", json={"name": "Bulb-9W", "quantity": 5, "selling_price": "5.00"})
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = client.post(f"/products/{product_id}/adjust", json={"delta": -2})
        assert response.status_code == 200
        assert response.json()["quantity"] == 3

        response = client.get(f"/products/{product_id}/history")
        assert sorted(h["action_type"] for h in response.json()) == ["add", "adjustment"]

    def test_list_in_stock(self, client, make_product):
        make_product(name="Lamp A", quantity=1)
        make_product(name="Lamp B", quantity=0)
        response = client.get("/products/", params={"in_stock": True})
        assert [p["name"] for p in response.json()["products"]] == ["Lamp A"]
