"""
Tests for the customers module
"""

import pytest
from uuid import uuid4
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate
from app.modules.customers.service import CustomerService


class TestCustomerSchemas:

    def test_phone_is_normalized(self):
        data = CustomerCreate(name="Ana Lopez", phone="(555) 000-1111")
        assert data.phone == "5550001111"

    def test_blank_phone_becomes_none(self):
        assert CustomerCreate(name="Ana Lopez", phone="  ").phone is None

    def test_invalid_phone(self):
        with pytest.raises(ValidationError):
            CustomerCreate(name="Ana Lopez", phone="12ab")


class TestCustomerService:

    def test_create_and_get(self, db_session):
        service = CustomerService(db_session)
        customer = service.create_customer(CustomerCreate(name="Ana Lopez", phone="5550001111"))
        assert customer.id is not None
        assert service.get_customer(customer.id).name == "Ana Lopez"

    def test_duplicate_phone(self, db_session, make_customer):
        make_customer(phone="5550001111")
        with pytest.raises(HTTPException) as exc_info:
            CustomerService(db_session).create_customer(CustomerCreate(name="Other", phone="555-000-1111"))
        assert exc_info.value.status_code == 409

    def test_get_unknown(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            CustomerService(db_session).get_customer(uuid4())
        assert exc_info.value.status_code == 404

    def test_update(self, db_session, make_customer):
        customer = make_customer()
        updated = CustomerService(db_session).update_customer(
            customer.id, CustomerUpdate(email="ana@example.com")
        )
        assert updated.email == "ana@example.com"
        assert updated.name == "Ana Lopez"

    def test_search_is_case_insensitive_or(self, db_session, make_customer):
        make_customer(name="Ana Lopez", phone="5550001111")
        make_customer(name="Bruno Diaz", phone="5559998888", email="ANA.friend@example.com")
        names = sorted(c.name for c in CustomerService(db_session).search_customers("ana"))
        assert names == ["Ana Lopez", "Bruno Diaz"]

    def test_search_escapes_wildcards(self, db_session, make_customer):
        make_customer(name="Ana Lopez")
        assert CustomerService(db_session).search_customers("%%") == []

    def test_find_or_create_reuses_phone(self, db_session, make_customer):
        existing = make_customer(phone="5550001111")
        service = CustomerService(db_session)
        assert service.find_or_create("Someone", "555 000 1111").id == existing.id

        created = service.find_or_create("Carla Ruiz", "5551112222")
        db_session.commit()
        assert created.id != existing.id
        assert db_session.query(Customer).count() == 2

    def test_find_or_create_needs_name_and_phone(self, db_session):
        service = CustomerService(db_session)
        assert service.find_or_create(None, "5551112222") is None
        assert service.find_or_create("Carla", None) is None


class TestCustomersAPI:

    def test_create_list_and_search(self, client):
        response = client.post("/customers/", json={"name": "Ana Lopez", "phone": "555-000-1111"})
        assert response.status_code == 201
        assert response.json()["phone"] == "5550001111"

        response = client.get("/customers/")
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = client.get("/customers/search", params={"q": "lop"})
        assert [c["name"] for c in response.json()] == ["Ana Lopez"]

    def test_get_unknown(self, client):
        assert client.get(f"/customers/{uuid4()}").status_code == 404
