"""
Checkout arithmetic: per-line discounts, cart discount, tax and
advance payment status.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from app.modules.invoices.models import DiscountType, InvoiceStatus
from app.modules.invoices.schemas import SaleLineTotals, SaleTotals

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class SaleCalculator:
    """Computes the totals of a cart"""

    @staticmethod
    def discount_amount(base: Decimal, discount: Decimal, discount_type: DiscountType) -> Decimal:
        """
        Percentage discounts apply to the base; fixed discounts are
        capped at the base so a line never goes negative.
        """
        base = Decimal(base)
        if discount_type == DiscountType.PERCENTAGE:
            return money(base * Decimal(discount) / 100)
        return money(min(Decimal(discount), base))

    @classmethod
    def line_totals(
        cls,
        quantity: int,
        unit_price: Decimal,
        discount: Decimal,
        discount_type: DiscountType
    ) -> SaleLineTotals:
        subtotal = money(Decimal(unit_price) * quantity)
        line_discount = cls.discount_amount(subtotal, discount, discount_type)
        return SaleLineTotals(
            subtotal=subtotal,
            discount_amount=line_discount,
            total_price=subtotal - line_discount
        )

    @staticmethod
    def payment_status(total: Decimal, paid: Decimal) -> InvoiceStatus:
        if paid <= 0:
            return InvoiceStatus.UNPAID
        if paid >= total:
            return InvoiceStatus.PAID
        return InvoiceStatus.PARTIALLY_PAID

    @classmethod
    def calculate(
        cls,
        lines: Iterable[Tuple[int, Decimal, Decimal, DiscountType]],
        discount_value: Decimal,
        discount_type: DiscountType,
        tax_rate: Decimal,
        advance_payment: Decimal
    ) -> SaleTotals:
        """
        Args:
            lines: (quantity, unit_price, discount, discount_type) per cart line
            discount_value: cart-level discount
            discount_type: how discount_value is read
            tax_rate: percent applied after all discounts
            advance_payment: amount paid at checkout

        Returns:
            SaleTotals with the payment status derived from the advance
        """
        line_totals = [cls.line_totals(*line) for line in lines]
        subtotal = sum((line.total_price for line in line_totals), ZERO)

        cart_discount = cls.discount_amount(subtotal, discount_value, discount_type)
        taxable = subtotal - cart_discount
        tax_amount = money(taxable * Decimal(tax_rate) / 100)
        total = taxable + tax_amount

        advance = money(advance_payment)
        remaining = max(ZERO, total - advance)

        return SaleTotals(
            lines=line_totals,
            subtotal=subtotal,
            discount_amount=cart_discount,
            tax_amount=tax_amount,
            total_amount=total,
            remaining_amount=remaining,
            status=cls.payment_status(total, advance)
        )
