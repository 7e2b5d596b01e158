"""SQLAlchemy models package."""

from invoice_matching.models.invoice import Invoice, InvoiceStatus
from invoice_matching.models.match import InvoiceTransactionMatch, MatchConfidence, MatchedBy
from invoice_matching.models.transaction import BankTransaction, ReconciliationStatus

__all__ = [
    "BankTransaction",
    "Invoice",
    "InvoiceStatus",
    "InvoiceTransactionMatch",
    "MatchConfidence",
    "MatchedBy",
    "ReconciliationStatus",
]
