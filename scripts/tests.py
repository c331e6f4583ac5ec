"""
Tests for the demo seed script
"""

from app.modules.auth.models import User
from app.modules.auth.service import AuthService

import seed_demo_data


class TestSeedDemoData:

    def test_default_admin_credentials_are_accepted(self, db_session):
        args = seed_demo_data.build_parser().parse_args([])

        admin = AuthService(db_session).ensure_admin(args.email, args.password)

        assert admin.email == "admin@example.com"
        assert admin.role == "admin"
        assert db_session.query(User).count() == 1

    def test_seeds_products_customers_and_sales(self, db_session):
        products = seed_demo_data.create_products(db_session, 6)
        customers = seed_demo_data.create_customers(db_session, 3)
        sales = seed_demo_data.create_sales(db_session, 4, products, customers)

        assert len(products) == 6
        assert len(customers) == 3
        assert sales == 4
