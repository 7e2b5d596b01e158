"""Invoice model used as a matching target.

Owned by the finance module; reconciliation reads it by id.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from invoice_matching.database import Base
from invoice_matching.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin


class InvoiceStatus(str, Enum):
    """Settlement status of an invoice."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(UUIDMixin, UserOwnedMixin, TimestampMixin, Base):
    """Supplier invoice or expense awaiting payment."""

    __tablename__ = "invoices"

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus),
        nullable=False,
        default=InvoiceStatus.PENDING,
    )

    @property
    def reference_date(self) -> date:
        """Date used for matching; falls back to creation date."""
        if self.issue_date is not None:
            return self.issue_date
        return self.created_at.date()

    @property
    def match_text(self) -> str:
        """Free text compared against transaction descriptions."""
        parts = [self.vendor_name, self.description, self.invoice_number, self.payment_reference]
        return " ".join(part for part in parts if part)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number} total={self.total}>"
