from sqlalchemy.orm import Session

from app.modules.invoices.models import InvoiceSequence, InvoiceType

PREFIXES = {
    InvoiceType.SALES: "SALE",
    InvoiceType.PRODUCT_ADDITION: "ADD",
    InvoiceType.EXCHANGE: "EXC",
}


def next_number(db: Session, prefix: str) -> str:
    """Next sequential document number for a prefix, e.g. SALE-000042. Flushes, does not commit."""
    sequence = db.query(InvoiceSequence).filter(InvoiceSequence.prefix == prefix).with_for_update().first()

    if not sequence:
        sequence = InvoiceSequence(prefix=prefix, current_number=0)
        db.add(sequence)
        db.flush()

    sequence.current_number += 1
    db.flush()
    return f"{prefix}-{sequence.current_number:06d}"


def generate_invoice_number(db: Session, invoice_type: InvoiceType) -> str:
    return next_number(db, PREFIXES[invoice_type])
