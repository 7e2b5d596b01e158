"""Bank transaction model.

Rows are written by the bank sync integration; the reconciliation engine only
updates ``reconciliation_status``.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, Index, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from invoice_matching.database import Base
from invoice_matching.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin


class ReconciliationStatus(str, Enum):
    """Reconciliation state of a bank transaction."""

    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


class BankTransaction(UUIDMixin, UserOwnedMixin, TimestampMixin, Base):
    """Money movement imported from a bank account."""

    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("ix_bank_transactions_user_status_date", "user_id", "reconciliation_status", "execution_date"),
    )

    # Negative amounts are outflows
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    execution_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reconciliation_status: Mapped[ReconciliationStatus] = mapped_column(
        SQLEnum(ReconciliationStatus),
        nullable=False,
        default=ReconciliationStatus.PENDING,
    )

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0

    def __repr__(self) -> str:
        return (
            f"<BankTransaction id={self.id} amount={self.amount} "
            f"date={self.execution_date} status={self.reconciliation_status}>"
        )
