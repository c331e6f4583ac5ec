"""
Business logic for customers: CRUD, lookup by name/phone/email,
and the find-or-create used by sales checkout.
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_, desc
from typing import List, Optional
from uuid import UUID
import logging

from app.common.validators import escape_like, normalize_phone
from app.core.config import settings
from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate, CustomerList

logger = logging.getLogger(__name__)


class CustomerService:
    """Customer records management"""

    def __init__(self, db: Session):
        self.db = db

    def create_customer(self, customer_data: CustomerCreate) -> Customer:
        if customer_data.phone:
            existing = self.db.query(Customer).filter(Customer.phone == customer_data.phone).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"A customer with phone {customer_data.phone} already exists"
                )

        customer = Customer(
            name=customer_data.name,
            phone=customer_data.phone,
            email=customer_data.email,
            address=customer_data.address
        )
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def get_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Customer not found"
            )
        return customer

    def update_customer(self, customer_id: UUID, customer_update: CustomerUpdate) -> Customer:
        customer = self.get_customer(customer_id)
        for field, value in customer_update.model_dump(exclude_unset=True).items():
            setattr(customer, field, value)
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def get_customers(self, limit: int = 20, offset: int = 0, search: Optional[str] = None) -> CustomerList:
        query = self.db.query(Customer)
        if search:
            query = query.filter(self._matches(search))

        total = query.count()
        customers = query.order_by(desc(Customer.created_at)).offset(offset).limit(limit).all()
        return CustomerList(customers=customers, total=total, limit=limit, offset=offset)

    def search_customers(self, search: str, limit: Optional[int] = None) -> List[Customer]:
        """
        Case-insensitive match against name, phone or email.
        Queries shorter than the configured minimum return nothing.
        """
        term = (search or "").strip()
        if len(term) < settings.CUSTOMER_SEARCH_MIN_LENGTH:
            return []

        return (
            self.db.query(Customer)
            .filter(self._matches(term))
            .order_by(Customer.name)
            .limit(limit or settings.CUSTOMER_SEARCH_LIMIT)
            .all()
        )

    def find_or_create(self, name: Optional[str], phone: Optional[str]) -> Optional[Customer]:
        """
        Resolve the customer of a checkout by phone, creating it on first sale.
        Needs both name and phone; flushes without committing.
        """
        phone = normalize_phone(phone)
        if not name or not phone:
            return None

        customer = self.db.query(Customer).filter(Customer.phone == phone).first()
        if customer:
            return customer

        customer = Customer(name=name, phone=phone)
        self.db.add(customer)
        self.db.flush()
        logger.info(f"Created customer {customer.id} from checkout")
        return customer

    @staticmethod
    def _matches(term: str):
        pattern = f"%{escape_like(term)}%"
        return or_(
            Customer.name.ilike(pattern, escape="\\"),
            Customer.phone.ilike(pattern, escape="\\"),
            Customer.email.ilike(pattern, escape="\\"),
        )
