"""Pydantic schemas for the matching API."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from invoice_matching.models import MatchConfidence, MatchedBy, ReconciliationStatus
from invoice_matching.schemas.base import BaseResponse, ListResponse
from invoice_matching.services.candidates import SuggestedAction


class TransactionSummary(BaseResponse):
    """Summary of a bank transaction."""

    id: UUID
    amount: Decimal
    currency: str
    execution_date: date
    description: str
    counterparty_name: str | None = None
    reconciliation_status: ReconciliationStatus


class MatchResponse(BaseResponse):
    """A reconciliation match."""

    id: UUID
    invoice_id: UUID
    transaction_id: UUID
    match_score: int
    match_confidence: MatchConfidence
    matched_by: MatchedBy
    matched_by_user_id: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    matched_at: datetime
    created_at: datetime


MatchListResponse = ListResponse[MatchResponse]


class ScoreBreakdownResponse(BaseResponse):
    amount: float
    date: float
    description: float


class SuggestionResponse(BaseResponse):
    """Scored candidate transaction for an invoice."""

    invoice_id: UUID
    transaction: TransactionSummary
    score: int
    confidence: MatchConfidence
    breakdown: ScoreBreakdownResponse
    suggested_action: SuggestedAction


SuggestionListResponse = ListResponse[SuggestionResponse]


class InvoiceSuggestions(BaseModel):
    invoice_id: UUID
    suggestions: list[SuggestionResponse]


SuggestionsByInvoiceResponse = ListResponse[InvoiceSuggestions]

TransactionListResponse = ListResponse[TransactionSummary]


class ConfirmManualRequest(BaseModel):
    """Request body to confirm a user match."""

    invoice_id: UUID
    transaction_id: UUID
    notes: str | None = Field(default=None, max_length=2000)


class ConfirmAutoRequest(BaseModel):
    """Request body to confirm a system match.

    ``score`` is informational; the stored score is recomputed.
    """

    invoice_id: UUID
    transaction_id: UUID
    score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=2000)


class BatchConfirmItem(BaseModel):
    invoice_id: UUID
    transaction_id: UUID
    matched_by: MatchedBy = MatchedBy.SYSTEM
    score: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=2000)


class BatchConfirmRequest(BaseModel):
    items: list[BatchConfirmItem] = Field(..., min_length=1, max_length=100)


class BatchUnmatchRequest(BaseModel):
    match_ids: list[UUID] = Field(..., min_length=1, max_length=100)


class UnmatchPairRequest(BaseModel):
    invoice_id: UUID
    transaction_id: UUID


class NotesUpdateRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class BatchItemErrorResponse(BaseResponse):
    id: str
    code: str
    reason: str


class BatchResultResponse(BaseResponse):
    """Per-item outcome of a batch request."""

    succeeded: int
    failed: int
    errors: list[BatchItemErrorResponse] = Field(default_factory=list)


class UnmatchCountResponse(BaseModel):
    removed: int


class MatchStatisticsResponse(BaseResponse):
    total: int
    auto: int
    manual: int
    high: int
    medium: int
    low: int
    needing_review: int
