"""
Tests for delivery slips (chalans)
"""

import pytest
from datetime import date
from uuid import uuid4
from fastapi import HTTPException

from app.modules.chalans.models import Chalan, ChalanItem, ChalanStatus
from app.modules.chalans.schemas import ChalanCreate, ChalanUpdate, ChalanItemIn
from app.modules.chalans.service import ChalanService, merge_lines


@pytest.fixture
def stock(make_product):
    return make_product(name="Bulb-9W"), make_product(name="Cable 2m", selling_price="3.00")


@pytest.fixture
def chalan(db_session, make_customer, stock):
    bulb, cable = stock
    return ChalanService(db_session).create_chalan(ChalanCreate(
        customer_id=make_customer().id,
        items=[
            ChalanItemIn(product_id=bulb.id, quantity=4),
            ChalanItemIn(product_id=cable.id, quantity=2, description="Grey"),
        ]
    ))


def quantities(chalan):
    return {item.product_name: item.quantity for item in chalan.items}


class TestMergeLines:

    def test_same_product_is_merged(self):
        product_id = uuid4()
        item_id = uuid4()
        merged = merge_lines([
            ChalanItemIn(product_id=product_id, quantity=2),
            ChalanItemIn(id=item_id, product_id=product_id, quantity=3, description="Boxed"),
        ])
        assert len(merged) == 1
        assert merged[0].quantity == 5
        assert merged[0].id == item_id
        assert merged[0].description == "Boxed"

    def test_order_is_kept(self):
        first, second = uuid4(), uuid4()
        merged = merge_lines([
            ChalanItemIn(product_id=first, quantity=1),
            ChalanItemIn(product_id=second, quantity=1),
        ])
        assert [line.product_id for line in merged] == [first, second]


class TestChalanService:

    def test_create_assigns_number_and_snapshots_names(self, chalan, stock):
        assert chalan.chalan_number == "CH-000001"
        assert chalan.status == ChalanStatus.PENDING
        assert chalan.chalan_date == date.today()
        assert chalan.customer_name == "Ana Lopez"
        assert quantities(chalan) == {"Bulb-9W": 4, "Cable 2m": 2}
        assert chalan.total_quantity == 6
        assert chalan.invoiced is False

    def test_numbers_are_sequential(self, db_session, chalan, stock):
        second = ChalanService(db_session).create_chalan(ChalanCreate(
            customer_id=chalan.customer_id,
            items=[ChalanItemIn(product_id=stock[0].id, quantity=1)]
        ))
        assert second.chalan_number == "CH-000002"

    def test_create_does_not_touch_stock(self, db_session, chalan, stock):
        bulb, _ = stock
        db_session.refresh(bulb)
        assert bulb.quantity == 50

    def test_duplicate_products_are_merged(self, db_session, make_customer, stock):
        bulb, _ = stock
        chalan = ChalanService(db_session).create_chalan(ChalanCreate(
            customer_id=make_customer().id,
            items=[
                ChalanItemIn(product_id=bulb.id, quantity=1),
                ChalanItemIn(product_id=bulb.id, quantity=2),
            ]
        ))
        assert quantities(chalan) == {"Bulb-9W": 3}

    def test_supplied_number_must_be_unique(self, db_session, chalan, stock):
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).create_chalan(ChalanCreate(
                customer_id=chalan.customer_id,
                chalan_number=chalan.chalan_number,
                items=[ChalanItemIn(product_id=stock[0].id, quantity=1)]
            ))
        assert exc_info.value.status_code == 409

    def test_unknown_product_writes_nothing(self, db_session, make_customer):
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).create_chalan(ChalanCreate(
                customer_id=make_customer().id,
                items=[ChalanItemIn(product_id=uuid4(), quantity=1)]
            ))
        assert exc_info.value.status_code == 404
        assert db_session.query(Chalan).count() == 0

    def test_unknown_customer(self, db_session, stock):
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).create_chalan(ChalanCreate(
                customer_id=uuid4(),
                items=[ChalanItemIn(product_id=stock[0].id, quantity=1)]
            ))
        assert exc_info.value.status_code == 404

    def test_get_unknown(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).get_chalan(uuid4())
        assert exc_info.value.status_code == 404

    def test_list_search_and_filter(self, db_session, make_customer, stock):
        service = ChalanService(db_session)
        ana = make_customer(name="Ana Lopez", phone="5550001111")
        bruno = make_customer(name="Bruno Diaz", phone="5559998888")
        for customer in (ana, bruno):
            service.create_chalan(ChalanCreate(
                customer_id=customer.id,
                items=[ChalanItemIn(product_id=stock[0].id, quantity=1)]
            ))

        assert service.get_chalans().total == 2
        by_name = service.get_chalans(search="bruno")
        assert [c.customer_name for c in by_name.chalans] == ["Bruno Diaz"]
        by_number = service.get_chalans(search="CH-000001")
        assert [c.customer_name for c in by_number.chalans] == ["Ana Lopez"]
        assert service.get_chalans(customer_id=ana.id).total == 1
        assert service.get_chalans(status_filter=ChalanStatus.DELIVERED).total == 0

    def test_edit_replaces_lines(self, db_session, chalan, stock, make_product):
        bulb, cable = stock
        lamp = make_product(name="Desk Lamp", selling_price="8.00")
        bulb_item = next(i for i in chalan.items if i.product_id == bulb.id)

        updated = ChalanService(db_session).update_chalan(chalan.id, ChalanUpdate(
            status=ChalanStatus.IN_TRANSIT,
            notes="Leave at reception",
            items=[
                ChalanItemIn(id=bulb_item.id, product_id=bulb.id, quantity=6),
                ChalanItemIn(product_id=lamp.id, quantity=1),
            ]
        ))

        assert updated.status == ChalanStatus.IN_TRANSIT
        assert updated.notes == "Leave at reception"
        assert quantities(updated) == {"Bulb-9W": 6, "Desk Lamp": 1}
        assert bulb_item.id in {i.id for i in updated.items}
        assert db_session.query(ChalanItem).filter(ChalanItem.product_id == cable.id).count() == 0

    def test_edit_without_items_keeps_lines(self, db_session, chalan):
        updated = ChalanService(db_session).update_chalan(
            chalan.id, ChalanUpdate(status=ChalanStatus.DELIVERED)
        )
        assert updated.status == ChalanStatus.DELIVERED
        assert quantities(updated) == {"Bulb-9W": 4, "Cable 2m": 2}

    def test_edit_with_foreign_item_id(self, db_session, chalan, stock):
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).update_chalan(chalan.id, ChalanUpdate(
                items=[ChalanItemIn(id=uuid4(), product_id=stock[0].id, quantity=1)]
            ))
        assert exc_info.value.status_code == 404
        db_session.expire_all()
        assert quantities(ChalanService(db_session).get_chalan(chalan.id)) == {"Bulb-9W": 4, "Cable 2m": 2}

    def test_link_invoice_of_same_customer(self, db_session, chalan, stock, make_sales_invoice):
        invoice = make_sales_invoice(chalan.customer, [(stock[0], 4, "5.00")])
        updated = ChalanService(db_session).update_chalan(chalan.id, ChalanUpdate(invoice_id=invoice.id))
        assert updated.invoiced is True
        assert updated.invoice_id == invoice.id

    def test_link_invoice_of_other_customer(self, db_session, chalan, stock, make_customer, make_sales_invoice):
        other = make_customer(name="Bruno Diaz", phone="5559998888")
        invoice = make_sales_invoice(other, [(stock[0], 1, "5.00")])
        with pytest.raises(HTTPException) as exc_info:
            ChalanService(db_session).update_chalan(chalan.id, ChalanUpdate(invoice_id=invoice.id))
        assert exc_info.value.status_code == 400

    def test_rename_to_taken_number(self, db_session, chalan, stock):
        service = ChalanService(db_session)
        other = service.create_chalan(ChalanCreate(
            customer_id=chalan.customer_id,
            chalan_number="MANUAL-7",
            items=[ChalanItemIn(product_id=stock[0].id, quantity=1)]
        ))
        with pytest.raises(HTTPException) as exc_info:
            service.update_chalan(other.id, ChalanUpdate(chalan_number=chalan.chalan_number))
        assert exc_info.value.status_code == 409


class TestChalansAPI:

    def test_create_and_get(self, client, make_customer, stock):
        bulb, _ = stock
        customer = make_customer()
        response = client.post("/chalans/", json={
            "customer_id": str(customer.id),
            "items": [{"product_id": str(bulb.id), "quantity": 3}]
        })
        assert response.status_code == 201
        body = response.json()
        assert body["chalan_number"] == "CH-000001"
        assert body["items"][0]["product_name"] == "Bulb-9W"

        response = client.get(f"/chalans/{body['id']}")
        assert response.status_code == 200
        assert response.json()["total_quantity"] == 3

    def test_empty_items_rejected(self, client, make_customer):
        response = client.post("/chalans/", json={"customer_id": str(make_customer().id), "items": []})
        assert response.status_code == 422

    def test_list_by_status(self, client, chalan):
        response = client.get("/chalans/", params={"status": "pending"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_patch(self, client, chalan):
        response = client.patch(f"/chalans/{chalan.id}", json={"status": "delivered"})
        assert response.status_code == 200
        assert response.json()["status"] == "delivered"
