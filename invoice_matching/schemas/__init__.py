"""Pydantic schemas package."""

from invoice_matching.schemas.base import BaseResponse, ListResponse
from invoice_matching.schemas.matching import (
    BatchConfirmItem,
    BatchConfirmRequest,
    BatchItemErrorResponse,
    BatchResultResponse,
    BatchUnmatchRequest,
    ConfirmAutoRequest,
    ConfirmManualRequest,
    InvoiceSuggestions,
    MatchListResponse,
    MatchResponse,
    MatchStatisticsResponse,
    NotesUpdateRequest,
    ScoreBreakdownResponse,
    SuggestionListResponse,
    SuggestionResponse,
    SuggestionsByInvoiceResponse,
    TransactionListResponse,
    TransactionSummary,
    UnmatchCountResponse,
    UnmatchPairRequest,
)

__all__ = [
    "BaseResponse",
    "BatchConfirmItem",
    "BatchConfirmRequest",
    "BatchItemErrorResponse",
    "BatchResultResponse",
    "BatchUnmatchRequest",
    "ConfirmAutoRequest",
    "ConfirmManualRequest",
    "InvoiceSuggestions",
    "ListResponse",
    "MatchListResponse",
    "MatchResponse",
    "MatchStatisticsResponse",
    "NotesUpdateRequest",
    "ScoreBreakdownResponse",
    "SuggestionListResponse",
    "SuggestionResponse",
    "SuggestionsByInvoiceResponse",
    "TransactionListResponse",
    "TransactionSummary",
    "UnmatchCountResponse",
    "UnmatchPairRequest",
]
