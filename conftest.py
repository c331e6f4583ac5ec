"""
Shared fixtures: in-memory SQLite database, API client with an
authenticated admin, and factories for the records most tests need.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, engine, SessionLocal, get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext, UserRole
from app.modules.customers.models import Customer
from app.modules.files.service import get_image_storage
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceType, InvoiceStatus
from app.modules.products.models import Product


class FakeImageStorage:
    """Stands in for MinIO; remembers what was uploaded and deleted"""

    def __init__(self):
        self.uploaded = []
        self.deleted = []

    def upload_employee_image(self, employee_id, file):
        url = f"http://storage.test/employee-images/employees/{employee_id}/{file.filename}"
        self.uploaded.append((url, file.file.read()))
        return url

    def delete_by_url(self, url):
        self.deleted.append(url)
        return True


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def auth_context():
    return AuthContext(user_id=uuid4(), user_role=UserRole.ADMIN)


@pytest.fixture
def image_storage():
    return FakeImageStorage()


@pytest.fixture
def client(db_session, auth_context, image_storage):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[AuthDependencies.get_auth_context] = lambda: auth_context
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_customer(db_session):
    def _make(name="Ana Lopez", phone="5550001111", email=None):
        customer = Customer(name=name, phone=phone, email=email)
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(name="Bulb-9W", quantity=50, selling_price="5.00", buying_price="3.00", barcode=None):
        product = Product(
            name=name,
            barcode=barcode,
            quantity=quantity,
            selling_price=Decimal(selling_price),
            buying_price=Decimal(buying_price)
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture
def make_sales_invoice(db_session):
    """
    Build a paid sales invoice. Lines are (product, quantity, unit_price).
    """
    def _make(customer, lines, created_at=None):
        total = sum((Decimal(price) * qty for _, qty, price in lines), Decimal("0"))
        invoice = Invoice(
            invoice_number=f"SALE-{uuid4().hex[:6].upper()}",
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone if customer else None,
            invoice_type=InvoiceType.SALES,
            status=InvoiceStatus.PAID,
            subtotal=total,
            total_amount=total,
            advance_payment=total,
            created_at=created_at or datetime.utcnow()
        )
        db_session.add(invoice)
        db_session.flush()

        for product, quantity, price in lines:
            db_session.add(InvoiceItem(
                invoice_id=invoice.id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=Decimal(price),
                total_price=Decimal(price) * quantity
            ))
        db_session.commit()
        db_session.refresh(invoice)
        return invoice
    return _make
