"""
Customers module

Buyers identified by name, phone and email. Customers are created on the
first sale (looked up by phone) or directly from the back office.
"""

from .models import Customer
from .service import CustomerService

__all__ = ["Customer", "CustomerService"]
