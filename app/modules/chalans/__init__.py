"""
Chalans module

Delivery slips that list what was handed over to a customer:

- Sequential numbering (CH-000001), or a number supplied by the shop
- Lines snapshot the product name; repeated products are merged
- Delivery status and an optional link to the invoice that bills it

Tables:
- chalans: Slip header
- chalan_items: Products and quantities on a slip
"""

from app.modules.chalans.models import Chalan, ChalanItem, ChalanStatus

__all__ = ["Chalan", "ChalanItem", "ChalanStatus"]
