"""
Invoices module

Sales checkout and invoice records:

- Checkout with per-line and cart discounts, tax and advance payment
- Stock is decremented for every sold line (with history rows)
- Payments, including negative refund payments written by returns
- Sequential numbering per invoice type (SALE-, ADD-, EXC-)

Tables:
- invoices: Sales, stock additions and exchange balances
- invoice_items: Lines of an invoice
- payments: Money movements tied to an invoice
- invoice_sequences: Numbering counters
"""

from .models import Invoice, InvoiceItem, Payment, InvoiceSequence, InvoiceType, InvoiceStatus

__all__ = [
    "Invoice", "InvoiceItem", "Payment", "InvoiceSequence",
    "InvoiceType", "InvoiceStatus",
]
