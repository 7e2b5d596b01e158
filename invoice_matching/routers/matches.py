"""Invoice matching API router."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Query, status

from invoice_matching.deps import Batch, Candidates, CurrentUserId, LifecycleManager, Review
from invoice_matching.models import MatchConfidence, MatchedBy
from invoice_matching.repositories import MatchQuery
from invoice_matching.schemas import (
    BatchConfirmRequest,
    BatchResultResponse,
    BatchUnmatchRequest,
    ConfirmAutoRequest,
    ConfirmManualRequest,
    InvoiceSuggestions,
    MatchListResponse,
    MatchResponse,
    MatchStatisticsResponse,
    NotesUpdateRequest,
    SuggestionListResponse,
    SuggestionResponse,
    SuggestionsByInvoiceResponse,
    TransactionListResponse,
    TransactionSummary,
    UnmatchCountResponse,
    UnmatchPairRequest,
)
from invoice_matching.services.lifecycle import ConfirmRequest
from invoice_matching.utils.exceptions import unwrap_or_raise

router = APIRouter(prefix="/matches", tags=["matches"])


# --- Suggestions -----------------------------------------------------------


@router.get("/auto-matchable", response_model=SuggestionListResponse)
async def get_auto_matchable(user_id: CurrentUserId, review: Review) -> SuggestionListResponse:
    """Best HIGH-confidence suggestion per unmatched invoice."""
    suggestions = unwrap_or_raise(await review.get_auto_matchable(user_id))
    items = [SuggestionResponse.model_validate(s) for s in suggestions]
    return SuggestionListResponse(items=items, total=len(items))


@router.get("/suggest/all", response_model=SuggestionsByInvoiceResponse)
async def suggest_all(
    user_id: CurrentUserId,
    candidates: Candidates,
    min_score: int = Query(30, ge=0, le=100),
    max_suggestions: int = Query(10, ge=1, le=100),
) -> SuggestionsByInvoiceResponse:
    by_invoice = unwrap_or_raise(
        await candidates.suggest_for_all_unmatched(user_id, min_score=min_score, max_suggestions=max_suggestions)
    )
    items = [
        InvoiceSuggestions(
            invoice_id=invoice_id,
            suggestions=[SuggestionResponse.model_validate(s) for s in suggestions],
        )
        for invoice_id, suggestions in by_invoice.items()
    ]
    return SuggestionsByInvoiceResponse(items=items, total=len(items))


@router.get("/best/{invoice_id}", response_model=SuggestionResponse | None)
async def get_best_match(invoice_id: UUID, user_id: CurrentUserId, candidates: Candidates) -> SuggestionResponse | None:
    best = unwrap_or_raise(await candidates.get_best_match(user_id, invoice_id))
    return SuggestionResponse.model_validate(best) if best else None


@router.get("/suggest/{invoice_id}", response_model=SuggestionListResponse)
async def suggest_for_invoice(
    invoice_id: UUID,
    user_id: CurrentUserId,
    candidates: Candidates,
    min_score: int = Query(30, ge=0, le=100),
    max_suggestions: int = Query(10, ge=1, le=100),
) -> SuggestionListResponse:
    suggestions = unwrap_or_raise(
        await candidates.suggest_for_invoice(
            user_id,
            invoice_id,
            min_score=min_score,
            max_suggestions=max_suggestions,
        )
    )
    items = [SuggestionResponse.model_validate(s) for s in suggestions]
    return SuggestionListResponse(items=items, total=len(items))


@router.get("/candidates", response_model=TransactionListResponse)
async def find_candidates(
    user_id: CurrentUserId,
    candidates: Candidates,
    amount: Decimal = Query(..., gt=0),
    target_date: date = Query(..., alias="date"),
    tolerance_days: int = Query(3),
) -> TransactionListResponse:
    """Pending transactions within the amount and date windows."""
    found = unwrap_or_raise(await candidates.find_potential_matches(user_id, amount, target_date, tolerance_days))
    items = [TransactionSummary.model_validate(txn) for txn in found]
    return TransactionListResponse(items=items, total=len(items))


# --- Confirm ---------------------------------------------------------------


@router.post("/confirm/manual", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
async def confirm_manual(
    payload: ConfirmManualRequest,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> MatchResponse:
    record = unwrap_or_raise(
        await manager.confirm_manual(
            user_id,
            payload.invoice_id,
            payload.transaction_id,
            user_id=str(user_id),
            notes=payload.notes,
        )
    )
    return MatchResponse.model_validate(record)


@router.post("/confirm/auto", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
async def confirm_auto(
    payload: ConfirmAutoRequest,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> MatchResponse:
    record = unwrap_or_raise(
        await manager.confirm_auto(
            user_id,
            payload.invoice_id,
            payload.transaction_id,
            score=payload.score,
            notes=payload.notes,
        )
    )
    return MatchResponse.model_validate(record)


@router.post("/confirm/batch", response_model=BatchResultResponse)
async def confirm_batch(payload: BatchConfirmRequest, user_id: CurrentUserId, batch: Batch) -> BatchResultResponse:
    requests = [
        ConfirmRequest(
            invoice_id=item.invoice_id,
            transaction_id=item.transaction_id,
            matched_by=item.matched_by,
            user_id=str(user_id) if item.matched_by == MatchedBy.USER else None,
            notes=item.notes,
            score=item.score,
        )
        for item in payload.items
    ]
    result = await batch.confirm_batch(user_id, requests)
    return BatchResultResponse.model_validate(result)


# --- Unmatch ---------------------------------------------------------------


@router.post("/unmatch", response_model=MatchResponse)
async def unmatch_pair(payload: UnmatchPairRequest, user_id: CurrentUserId, manager: LifecycleManager) -> MatchResponse:
    record = unwrap_or_raise(await manager.unmatch_pair(user_id, payload.invoice_id, payload.transaction_id))
    return MatchResponse.model_validate(record)


@router.post("/unmatch/batch", response_model=BatchResultResponse)
async def unmatch_batch(payload: BatchUnmatchRequest, user_id: CurrentUserId, batch: Batch) -> BatchResultResponse:
    result = await batch.unmatch_batch(user_id, payload.match_ids)
    return BatchResultResponse.model_validate(result)


@router.delete("/invoice/{invoice_id}", response_model=UnmatchCountResponse)
async def unmatch_all_for_invoice(
    invoice_id: UUID,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> UnmatchCountResponse:
    removed = unwrap_or_raise(await manager.unmatch_all_for_invoice(user_id, invoice_id))
    return UnmatchCountResponse(removed=removed)


@router.delete("/transaction/{transaction_id}", response_model=UnmatchCountResponse)
async def unmatch_all_for_transaction(
    transaction_id: UUID,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> UnmatchCountResponse:
    removed = unwrap_or_raise(await manager.unmatch_all_for_transaction(user_id, transaction_id))
    return UnmatchCountResponse(removed=removed)


# --- Transaction transitions -----------------------------------------------


@router.post("/transactions/{transaction_id}/ignore", response_model=TransactionSummary)
async def ignore_transaction(
    transaction_id: UUID,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> TransactionSummary:
    txn = unwrap_or_raise(await manager.ignore(user_id, transaction_id))
    return TransactionSummary.model_validate(txn)


@router.post("/transactions/{transaction_id}/unignore", response_model=TransactionSummary)
async def unignore_transaction(
    transaction_id: UUID,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> TransactionSummary:
    txn = unwrap_or_raise(await manager.unignore(user_id, transaction_id))
    return TransactionSummary.model_validate(txn)


@router.post("/transactions/{transaction_id}/unreconcile", response_model=TransactionSummary)
async def unreconcile_transaction(
    transaction_id: UUID,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> TransactionSummary:
    txn = unwrap_or_raise(await manager.unreconcile(user_id, transaction_id))
    return TransactionSummary.model_validate(txn)


# --- Review ----------------------------------------------------------------


@router.get("/needs-review", response_model=MatchListResponse)
async def needs_review(
    user_id: CurrentUserId,
    review: Review,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> MatchListResponse:
    records = unwrap_or_raise(await review.find_needing_review(user_id, limit=limit, offset=offset))
    items = [MatchResponse.model_validate(r) for r in records]
    return MatchListResponse(items=items, total=len(items))


@router.get("/statistics", response_model=MatchStatisticsResponse)
async def get_statistics(user_id: CurrentUserId, review: Review) -> MatchStatisticsResponse:
    stats = unwrap_or_raise(await review.get_statistics(user_id))
    return MatchStatisticsResponse.model_validate(stats)


@router.get("", response_model=MatchListResponse)
async def list_matches(
    user_id: CurrentUserId,
    review: Review,
    invoice_id: UUID | None = None,
    transaction_id: UUID | None = None,
    match_confidence: MatchConfidence | None = None,
    matched_by: MatchedBy | None = None,
    matched_by_user_id: str | None = None,
    min_score: int | None = Query(None, ge=0, le=100),
    max_score: int | None = Query(None, ge=0, le=100),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: Literal["matched_at", "match_score"] = "matched_at",
    sort_order: Literal["asc", "desc"] = "desc",
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> MatchListResponse:
    query = MatchQuery(
        invoice_id=invoice_id,
        transaction_id=transaction_id,
        match_confidence=match_confidence,
        matched_by=matched_by,
        matched_by_user_id=matched_by_user_id,
        min_score=min_score,
        max_score=max_score,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    records, total = unwrap_or_raise(await review.list_matches(user_id, query))
    return MatchListResponse(items=[MatchResponse.model_validate(r) for r in records], total=total)


@router.get("/{match_id}", response_model=MatchResponse)
async def get_match(match_id: UUID, user_id: CurrentUserId, review: Review) -> MatchResponse:
    record = unwrap_or_raise(await review.get_match(user_id, match_id))
    return MatchResponse.model_validate(record)


@router.patch("/{match_id}/notes", response_model=MatchResponse)
async def update_notes(
    match_id: UUID,
    payload: NotesUpdateRequest,
    user_id: CurrentUserId,
    manager: LifecycleManager,
) -> MatchResponse:
    record = unwrap_or_raise(await manager.update_notes(user_id, match_id, payload.notes))
    return MatchResponse.model_validate(record)


@router.delete("/{match_id}", response_model=MatchResponse)
async def unmatch(match_id: UUID, user_id: CurrentUserId, manager: LifecycleManager) -> MatchResponse:
    record = unwrap_or_raise(await manager.unmatch(user_id, match_id))
    return MatchResponse.model_validate(record)
