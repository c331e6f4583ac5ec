"""
Seed script: populate a demo shop.

What it creates:
- Admin user with the given credentials.
- Products (default 40) with stock and prices.
- Customers (default 15).
- Sales invoices (default 30) through the normal checkout, so stock and
  history stay consistent.

Run from the project root:
    python scripts/seed_demo_data.py --email admin@example.com --password Admin!2025 \
        --products 40 --customers 15 --sales 30

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from decimal import Decimal

from app.database.database import Base, SessionLocal, engine
from app.main import app  # noqa: F401  registers every model
from app.modules.auth.service import AuthService
from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.invoices.models import DiscountType
from app.modules.invoices.schemas import SaleCreate, SaleLineCreate, PaymentMethod
from app.modules.invoices.service import InvoiceService
from app.modules.products.schemas import ProductCreate
from app.modules.products.service import ProductService

CATEGORIES = {
    "Lighting": ["Bulb-9W", "Bulb-12W", "LED Strip 5m", "Desk Lamp", "Floor Lamp"],
    "Electrical": ["Cable 2m", "Extension Cord", "Wall Socket", "Fuse 10A", "Switch"],
    "Tools": ["Screwdriver Set", "Pliers", "Tape Measure", "Utility Knife", "Hammer"],
}
FIRST_NAMES = ["Ana", "Bruno", "Carla", "Diego", "Elena", "Felipe", "Gloria", "Hugo", "Irene", "Jorge"]
LAST_NAMES = ["Lopez", "Diaz", "Ruiz", "Gil", "Paz", "Soto", "Vega", "Mora"]


def create_products(db, count: int):
    service = ProductService(db)
    names = [(category, name) for category, items in CATEGORIES.items() for name in items]
    products = []
    for i in range(count):
        category, name = names[i % len(names)]
        if i >= len(names):
            name = f"{name} #{i // len(names) + 1}"
        buying = Decimal(random.randint(100, 3000)) / 100
        products.append(service.create_product(ProductCreate(
            name=name,
            barcode=f"77{i:08d}",
            category=category,
            quantity=random.randint(5, 120),
            buying_price=buying,
            selling_price=(buying * Decimal("1.4")).quantize(Decimal("0.01"))
        )))
    return products


def create_customers(db, count: int):
    service = CustomerService(db)
    return [
        service.create_customer(CustomerCreate(
            name=f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
            phone=f"555{i:07d}"
        ))
        for i in range(count)
    ]


def create_sales(db, count: int, products, customers):
    service = InvoiceService(db)
    created = 0
    for _ in range(count):
        in_stock = [p for p in products if p.quantity > 3]
        if not in_stock:
            break
        picked = random.sample(in_stock, k=min(len(in_stock), random.randint(1, 3)))
        lines = [
            SaleLineCreate(
                product_id=p.id,
                quantity=random.randint(1, 3),
                discount=Decimal(random.choice([0, 0, 5, 10])),
                discount_type=DiscountType.PERCENTAGE
            )
            for p in picked
        ]
        service.create_sale(SaleCreate(
            customer_id=random.choice(customers).id,
            lines=lines,
            tax_rate=Decimal("5"),
            advance_payment=Decimal(random.choice([0, 10, 1000])),
            payment_method=random.choice(list(PaymentMethod))
        ))
        created += 1
    return created


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed demo shop data")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--password", default="Admin!2025")
    parser.add_argument("--products", type=int, default=40)
    parser.add_argument("--customers", type=int, default=15)
    parser.add_argument("--sales", type=int, default=30)
    return parser


def main():
    args = build_parser().parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = AuthService(db).ensure_admin(args.email, args.password)
        products = create_products(db, args.products)
        customers = create_customers(db, args.customers)
        sales = create_sales(db, args.sales, products, customers)

        print("Seed completed:")
        print(f"  Admin: {admin.email}")
        print(f"  Products: {len(products)}  Customers: {len(customers)}  Sales: {sales}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
