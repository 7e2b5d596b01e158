"""Candidate generation and ranked match suggestions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from invoice_matching.config import settings
from invoice_matching.errors import BusinessRuleError, NotFoundError, ValidationError, returns_result
from invoice_matching.logger import get_logger, log_timing
from invoice_matching.models import BankTransaction, Invoice, MatchConfidence
from invoice_matching.repositories import Repositories, UnitOfWork
from invoice_matching.services.match_records import parse_id
from invoice_matching.services.scoring import (
    HIGH_CONFIDENCE_SCORE,
    MEDIUM_CONFIDENCE_SCORE,
    ScoreBreakdown,
    ScoringConfig,
    classify_confidence,
    load_scoring_config,
    score_breakdown,
)

logger = get_logger(__name__)

MAX_TOLERANCE_DAYS = 30
DEFAULT_MIN_SCORE = 30


class SuggestedAction(str, Enum):
    AUTO_MATCH = "auto-match"
    SUGGEST = "suggest"
    MANUAL_REVIEW = "manual-review"


def suggested_action(score: int) -> SuggestedAction:
    if score >= HIGH_CONFIDENCE_SCORE:
        return SuggestedAction.AUTO_MATCH
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return SuggestedAction.SUGGEST
    return SuggestedAction.MANUAL_REVIEW


@dataclass(frozen=True)
class MatchSuggestion:
    """A scored candidate transaction for one invoice."""

    invoice_id: UUID
    transaction: BankTransaction
    score: int
    confidence: MatchConfidence
    breakdown: ScoreBreakdown
    suggested_action: SuggestedAction


def validate_tolerance(tolerance_days: int) -> int:
    if isinstance(tolerance_days, bool) or not isinstance(tolerance_days, int):
        raise ValidationError("tolerance_days must be an integer", "INVALID_TOLERANCE")
    if not 1 <= tolerance_days <= MAX_TOLERANCE_DAYS:
        raise ValidationError(
            f"tolerance_days must be between 1 and {MAX_TOLERANCE_DAYS}, got {tolerance_days}",
            "INVALID_TOLERANCE",
            fields=[{"field": "tolerance_days", "message": f"must be between 1 and {MAX_TOLERANCE_DAYS}"}],
        )
    return tolerance_days


def _validate_amount(value: Decimal | int | float | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid target amount: {value}", "INVALID_AMOUNT") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Target amount must be positive", "INVALID_AMOUNT")
    return amount


def _validate_min_score(min_score: int) -> int:
    if isinstance(min_score, bool) or not isinstance(min_score, int) or not 0 <= min_score <= 100:
        raise ValidationError("min_score must be an integer between 0 and 100", "INVALID_SCORE")
    return min_score


class CandidateGenerator:
    """Finds pending transactions that may settle an invoice, and ranks them."""

    def __init__(self, unit_of_work: UnitOfWork, scoring_config: ScoringConfig | None = None) -> None:
        self.unit_of_work = unit_of_work
        self._scoring_config = scoring_config

    @property
    def scoring_config(self) -> ScoringConfig:
        return self._scoring_config or load_scoring_config()

    @returns_result
    async def find_potential_matches(
        self,
        owner_id: UUID | str,
        target_amount: Decimal | int | float | str,
        target_date: date,
        tolerance_days: int | None = None,
    ) -> list[BankTransaction]:
        owner = parse_id(owner_id, "owner_id")
        amount = _validate_amount(target_amount)
        tolerance = validate_tolerance(
            settings.default_tolerance_days if tolerance_days is None else tolerance_days
        )

        async def query(repos: Repositories) -> list[BankTransaction]:
            return await repos.transactions.find_potential_matches(
                owner, amount, target_date, tolerance, limit=settings.candidate_limit
            )

        candidates = await self.unit_of_work.with_transaction(query)
        logger.debug(
            "Candidate transactions found",
            owner_id=str(owner),
            target_amount=str(amount),
            target_date=target_date.isoformat(),
            tolerance_days=tolerance,
            count=len(candidates),
        )
        return candidates

    @returns_result
    async def suggest_for_invoice(
        self,
        owner_id: UUID | str,
        invoice_id: UUID | str,
        *,
        min_score: int = DEFAULT_MIN_SCORE,
        max_suggestions: int | None = None,
    ) -> list[MatchSuggestion]:
        owner = parse_id(owner_id, "owner_id")
        invoice_uuid = parse_id(invoice_id, "invoice_id")
        _validate_min_score(min_score)
        limit = max_suggestions or settings.candidate_limit

        async def suggest(repos: Repositories) -> list[MatchSuggestion]:
            invoice = await repos.invoices.find_by_id(owner, invoice_uuid)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_uuid, "INVOICE_NOT_FOUND")
            if invoice.total <= 0:
                raise BusinessRuleError("Invoice total must be positive", "INVALID_INVOICE_AMOUNT")
            if await repos.matches.find_by_invoice(owner, invoice.id):
                return []
            return await self._suggestions(repos, owner, invoice, min_score, limit)

        return await self.unit_of_work.with_transaction(suggest)

    @returns_result
    async def suggest_for_all_unmatched(
        self,
        owner_id: UUID | str,
        *,
        min_score: int = DEFAULT_MIN_SCORE,
        max_suggestions: int | None = None,
    ) -> dict[UUID, list[MatchSuggestion]]:
        """Suggestions for every unmatched, non-cancelled invoice.

        Invoices without a qualifying candidate are left out of the result.
        """
        owner = parse_id(owner_id, "owner_id")
        _validate_min_score(min_score)
        limit = max_suggestions or settings.candidate_limit

        async def suggest_all(repos: Repositories) -> dict[UUID, list[MatchSuggestion]]:
            suggestions: dict[UUID, list[MatchSuggestion]] = {}
            for invoice in await repos.invoices.find_all(owner, unmatched_only=True):
                if invoice.total <= 0:
                    logger.warning("Skipping invoice with non-positive total", invoice_id=str(invoice.id))
                    continue
                found = await self._suggestions(repos, owner, invoice, min_score, limit)
                if found:
                    suggestions[invoice.id] = found
            return suggestions

        result = await self.unit_of_work.with_transaction(suggest_all)
        logger.info(
            "Suggestions generated",
            owner_id=str(owner),
            invoices_with_suggestions=len(result),
            min_score=min_score,
        )
        return result

    @returns_result
    async def get_best_match(self, owner_id: UUID | str, invoice_id: UUID | str) -> MatchSuggestion | None:
        suggestions = await self.suggest_for_invoice(
            owner_id,
            invoice_id,
            min_score=MEDIUM_CONFIDENCE_SCORE,
            max_suggestions=1,
        )
        found = suggestions.unwrap()
        return found[0] if found else None

    async def _suggestions(
        self,
        repos: Repositories,
        owner_id: UUID,
        invoice: Invoice,
        min_score: int,
        limit: int,
    ) -> list[MatchSuggestion]:
        config = self.scoring_config
        candidates = await repos.transactions.find_potential_matches(
            owner_id,
            invoice.total,
            invoice.reference_date,
            settings.suggestion_tolerance_days,
            limit=None,
        )
        suggestions = []
        with log_timing("score_candidates", logger=logger, level="debug", invoice_id=str(invoice.id)) as ctx:
            for transaction in candidates:
                breakdown = score_breakdown(
                    transaction,
                    invoice.total,
                    invoice.reference_date,
                    invoice.match_text,
                    config,
                )
                if breakdown.total < min_score:
                    continue
                suggestions.append(
                    MatchSuggestion(
                        invoice_id=invoice.id,
                        transaction=transaction,
                        score=breakdown.total,
                        confidence=classify_confidence(breakdown.total),
                        breakdown=breakdown,
                        suggested_action=suggested_action(breakdown.total),
                    )
                )
            ctx["scored"] = len(candidates)
            ctx["kept"] = len(suggestions)
        suggestions.sort(key=lambda s: s.score, reverse=True)
        return suggestions[:limit]
