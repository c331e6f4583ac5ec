"""
Customer returns and exchanges against sales invoices.
"""

from app.modules.returns.models import ProductReturn, ReturnType, ReturnStatus

__all__ = ["ProductReturn", "ReturnType", "ReturnStatus"]
