"""Immutable match records and their factories.

``MatchRecord`` is the engine-side view of an ``InvoiceTransactionMatch`` row.
Invariants are enforced on construction, so a record that exists is valid:

- score within 0-100
- system confidence is derived from the score
- manual matches are always 100/MANUAL
- ``matched_by_user_id`` present on user matches and absent on system ones
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from invoice_matching.errors import ValidationError
from invoice_matching.models import InvoiceTransactionMatch, MatchConfidence, MatchedBy
from invoice_matching.services.scoring import MANUAL_MATCH_SCORE, classify_confidence


def parse_id(value: UUID | str | None, field_name: str) -> UUID:
    """Parse a required identifier, raising ValidationError when absent or malformed."""
    if isinstance(value, UUID):
        return value
    if not value or not str(value).strip():
        raise ValidationError(
            f"{field_name} is required",
            "MISSING_ID",
            fields=[{"field": field_name, "message": f"{field_name} is required"}],
        )
    try:
        return UUID(str(value).strip())
    except ValueError as exc:
        raise ValidationError(
            f"{field_name} is not a valid identifier: {value}",
            "INVALID_ID",
            fields=[{"field": field_name, "message": "must be a UUID"}],
        ) from exc


@dataclass(frozen=True)
class MatchRecord:
    """A validated reconciliation fact."""

    invoice_id: UUID
    transaction_id: UUID
    match_score: int
    match_confidence: MatchConfidence
    matched_by: MatchedBy
    id: UUID = field(default_factory=uuid4)
    matched_by_user_id: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    matched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if isinstance(self.match_score, bool) or not isinstance(self.match_score, int):
            raise ValidationError("Match score must be an integer", "INVALID_SCORE")
        if not 0 <= self.match_score <= 100:
            raise ValidationError("Match score must be between 0 and 100", "INVALID_SCORE")

        if self.matched_by == MatchedBy.USER:
            if self.match_confidence != MatchConfidence.MANUAL or self.match_score != MANUAL_MATCH_SCORE:
                raise ValidationError("Manual matches must have score 100 and MANUAL confidence", "INVALID_MATCH")
            if not self.matched_by_user_id or not self.matched_by_user_id.strip():
                raise ValidationError("Manual matches must record the matching user", "INVALID_MATCH")
        else:
            if self.matched_by_user_id is not None:
                raise ValidationError("System matches cannot carry a user id", "INVALID_MATCH")
            if self.match_confidence != classify_confidence(self.match_score):
                raise ValidationError("System match confidence must follow its score", "INVALID_MATCH")

    @property
    def is_auto_match(self) -> bool:
        return self.matched_by == MatchedBy.SYSTEM

    @property
    def is_manual_match(self) -> bool:
        return self.matched_by == MatchedBy.USER

    @property
    def has_high_confidence(self) -> bool:
        return self.match_confidence in (MatchConfidence.HIGH, MatchConfidence.MANUAL)

    @property
    def needs_review(self) -> bool:
        return self.match_confidence in (MatchConfidence.MEDIUM, MatchConfidence.LOW)

    def age_days(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        matched_at = self.matched_at if self.matched_at.tzinfo else self.matched_at.replace(tzinfo=UTC)
        return (now - matched_at).days

    def with_notes(self, notes: str | None) -> MatchRecord:
        return replace(self, notes=notes)

    def with_metadata(self, key: str, value: Any) -> MatchRecord:
        return replace(self, metadata={**self.metadata, key: value})

    @classmethod
    def from_model(cls, row: InvoiceTransactionMatch) -> MatchRecord:
        return cls(
            id=row.id,
            invoice_id=row.invoice_id,
            transaction_id=row.transaction_id,
            match_score=row.match_score,
            match_confidence=row.match_confidence,
            matched_by=row.matched_by,
            matched_by_user_id=row.matched_by_user_id,
            notes=row.notes,
            metadata=dict(row.match_metadata or {}),
            matched_at=row.matched_at,
            created_at=row.created_at,
        )

    def to_model(self) -> InvoiceTransactionMatch:
        return InvoiceTransactionMatch(
            id=self.id,
            invoice_id=self.invoice_id,
            transaction_id=self.transaction_id,
            match_score=self.match_score,
            match_confidence=self.match_confidence,
            matched_by=self.matched_by,
            matched_by_user_id=self.matched_by_user_id,
            notes=self.notes,
            match_metadata=dict(self.metadata) or None,
            matched_at=self.matched_at,
            created_at=self.created_at,
        )


def create_auto_match(
    invoice_id: UUID | str,
    transaction_id: UUID | str,
    score: int,
    *,
    metadata: dict[str, Any] | None = None,
) -> MatchRecord:
    """Build a system match; confidence follows from the score."""
    return MatchRecord(
        invoice_id=parse_id(invoice_id, "invoice_id"),
        transaction_id=parse_id(transaction_id, "transaction_id"),
        match_score=score,
        match_confidence=classify_confidence(score),
        matched_by=MatchedBy.SYSTEM,
        metadata=metadata or {},
    )


def create_manual_match(
    invoice_id: UUID | str,
    transaction_id: UUID | str,
    user_id: str | None = None,
    notes: str | None = None,
) -> MatchRecord:
    """Build a user match. Always scored 100 with MANUAL confidence."""
    return MatchRecord(
        invoice_id=parse_id(invoice_id, "invoice_id"),
        transaction_id=parse_id(transaction_id, "transaction_id"),
        match_score=MANUAL_MATCH_SCORE,
        match_confidence=MatchConfidence.MANUAL,
        matched_by=MatchedBy.USER,
        matched_by_user_id=user_id,
        notes=notes,
    )
