"""Invoice to bank transaction match model."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_matching.database import Base
from invoice_matching.models.invoice import Invoice
from invoice_matching.models.transaction import BankTransaction


class MatchConfidence(str, Enum):
    """Trust tier of a match."""

    HIGH = "high"  # >=90: auto-match
    MEDIUM = "medium"  # 50-89: review queue
    LOW = "low"  # <50: manual review
    MANUAL = "manual"  # user confirmed


class MatchedBy(str, Enum):
    """Origin of a match."""

    SYSTEM = "system"
    USER = "user"


class InvoiceTransactionMatch(Base):
    """Reconciliation fact linking an invoice to the transaction that paid it.

    Matches are hard-deleted on unmatch, so every row is active. The unique
    constraint on ``transaction_id`` is what serializes concurrent confirms.
    """

    __tablename__ = "invoice_transaction_matches"
    __table_args__ = (
        UniqueConstraint("invoice_id", "transaction_id", name="uq_matches_invoice_transaction"),
        UniqueConstraint("transaction_id", name="uq_matches_transaction"),
        Index("ix_matches_confidence", "match_confidence"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    match_score: Mapped[int] = mapped_column(Integer, nullable=False)
    match_confidence: Mapped[MatchConfidence] = mapped_column(SQLEnum(MatchConfidence), nullable=False)
    matched_by: Mapped[MatchedBy] = mapped_column(SQLEnum(MatchedBy), nullable=False)
    matched_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    match_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    invoice: Mapped[Invoice] = relationship(Invoice, lazy="raise")
    transaction: Mapped[BankTransaction] = relationship(BankTransaction, lazy="raise")
