"""
Return and exchange arithmetic.

Pure functions over Decimal amounts; nothing here touches the database so the
same numbers back both the quote endpoint and the ledger writer.
"""

from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple
from uuid import UUID

from app.modules.invoices.calculator import money, ZERO
from app.modules.returns.models import ReturnType
from app.modules.returns.schemas import Settlement


class ReturnCalculator:
    """Helper for refund, price difference and return validation"""

    @staticmethod
    def remaining_quantities(
        items: Iterable[Tuple[UUID, UUID, int]],
        returned_by_product: Dict[UUID, int]
    ) -> Dict[UUID, int]:
        """
        Quantity still returnable per invoice line

        Args:
            items: (item_id, product_id, original_quantity) per invoice line
            returned_by_product: Units already returned against the invoice, per product

        Returns:
            Mapping item_id -> max_return_quantity, floored at zero
        """
        return {
            item_id: max(0, quantity - returned_by_product.get(product_id, 0))
            for item_id, product_id, quantity in items
        }

    @staticmethod
    def refund_amount(unit_price: Decimal, requested_quantity: int, max_return_quantity: int) -> Decimal:
        """
        Refund owed for the returned units

        Args:
            unit_price: Price paid per unit on the original invoice
            requested_quantity: Units the operator wants to return
            max_return_quantity: Units still returnable on the line

        Returns:
            unit_price * min(requested, max), rounded to cents, never negative
        """
        units = max(0, min(requested_quantity, max_return_quantity))
        return money(Decimal(unit_price) * units)

    @staticmethod
    def exchange_amount(selling_price: Decimal, requested_quantity: int) -> Decimal:
        return money(Decimal(selling_price) * max(0, requested_quantity))

    @staticmethod
    def price_difference(
        exchange_amount: Decimal,
        refund_amount: Decimal,
        return_fees: Decimal,
        same_product: bool
    ) -> Decimal:
        """
        Positive when the customer owes more, negative when store credit is owed.

        Swapping an item for the same product is always even.
        """
        if same_product:
            return ZERO
        return money(exchange_amount - (refund_amount - Decimal(return_fees)))

    @staticmethod
    def settlement(return_type: ReturnType, price_difference: Decimal) -> Settlement:
        if return_type == ReturnType.REFUND:
            return Settlement.REFUND
        if price_difference > 0:
            return Settlement.CUSTOMER_OWES
        if price_difference < 0:
            return Settlement.STORE_CREDIT
        return Settlement.EVEN

    @staticmethod
    def validate(
        item_selected: bool,
        requested_quantity: int,
        max_return_quantity: int,
        return_type: ReturnType,
        exchange_stock: Optional[int] = None
    ) -> Optional[str]:
        """
        Check a return request before anything is written

        Args:
            item_selected: Whether an invoice line was chosen
            requested_quantity: Units to return
            max_return_quantity: Units still returnable on the line
            return_type: Refund or exchange
            exchange_stock: On-hand quantity of the exchange product, None if none chosen

        Returns:
            Message for the first rule violated, None when the request is valid
        """
        if not item_selected:
            return "Please select a product to return"
        if requested_quantity < 1 or requested_quantity > max_return_quantity:
            return f"Return quantity must be between 1 and {max_return_quantity}"
        if return_type == ReturnType.EXCHANGE:
            if exchange_stock is None:
                return "Please select an exchange product"
            if exchange_stock < requested_quantity:
                return f"Only {exchange_stock} units available for exchange"
        return None
