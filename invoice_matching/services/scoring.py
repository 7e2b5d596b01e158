"""Similarity scoring and confidence classification for invoice matching."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from difflib import SequenceMatcher
from pathlib import Path

import yaml

from invoice_matching.errors import ValidationError
from invoice_matching.logger import get_logger
from invoice_matching.models import BankTransaction, MatchConfidence

logger = get_logger(__name__)

HIGH_CONFIDENCE_SCORE = 90
MEDIUM_CONFIDENCE_SCORE = 50
MANUAL_MATCH_SCORE = 100


@dataclass(frozen=True)
class ScoringConfig:
    """Runtime configuration for match scoring."""

    weight_amount: Decimal
    weight_date: Decimal
    weight_description: Decimal
    amount_percent: Decimal
    amount_absolute: Decimal
    date_days: int


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-signal sub-scores (0-100) and the weighted total."""

    amount: float
    date: float
    description: float
    total: int

    def as_dict(self) -> dict[str, float]:
        return {"amount": self.amount, "date": self.date, "description": self.description}


DEFAULT_CONFIG = ScoringConfig(
    weight_amount=Decimal("0.50"),
    weight_date=Decimal("0.25"),
    weight_description=Decimal("0.25"),
    amount_percent=Decimal("0.005"),
    amount_absolute=Decimal("0.10"),
    date_days=7,
)

_config_cache: ScoringConfig | None = None


def _config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "config" / "reconciliation.yaml"


def load_scoring_config(force_reload: bool = False) -> ScoringConfig:
    """Load scoring configuration from YAML if available.

    Caches the result to avoid repeated disk I/O. Weights that do not sum to
    1.0 are rejected in favour of the defaults.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    config_path = _config_path()

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            scoring = raw.get("scoring", {})
            weights = scoring.get("weights", {})
            tolerances = scoring.get("tolerances", {})

            loaded = ScoringConfig(
                weight_amount=Decimal(str(weights.get("amount", config.weight_amount))),
                weight_date=Decimal(str(weights.get("date", config.weight_date))),
                weight_description=Decimal(str(weights.get("description", config.weight_description))),
                amount_percent=Decimal(str(tolerances.get("amount_percent", config.amount_percent))),
                amount_absolute=Decimal(str(tolerances.get("amount_absolute", config.amount_absolute))),
                date_days=int(tolerances.get("date_days", config.date_days)),
            )
            weight_sum = loaded.weight_amount + loaded.weight_date + loaded.weight_description
            if weight_sum != Decimal("1"):
                logger.warning(
                    "Scoring weights do not sum to 1 - using defaults",
                    config_path=str(config_path),
                    weight_sum=str(weight_sum),
                )
            else:
                config = loaded
        except Exception as e:
            logger.warning(
                "Failed to load scoring config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )

    date_days_env = os.getenv("RECONCILIATION_DATE_WINDOW_DAYS")
    amount_absolute_env = os.getenv("RECONCILIATION_AMOUNT_TOLERANCE")
    if date_days_env:
        try:
            config = replace(config, date_days=int(date_days_env))
        except ValueError:
            logger.warning("Ignoring invalid RECONCILIATION_DATE_WINDOW_DAYS", value=date_days_env)
    if amount_absolute_env:
        try:
            config = replace(config, amount_absolute=Decimal(amount_absolute_env))
        except InvalidOperation:
            logger.warning("Ignoring invalid RECONCILIATION_AMOUNT_TOLERANCE", value=amount_absolute_env)

    _config_cache = config
    return config


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def score_description(a: str | None, b: str | None) -> float:
    """Score description similarity (0-100)."""
    if not a or not b:
        return 0.0
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    token_score = len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
    return round(100 * (0.6 * ratio + 0.4 * token_score), 2)


def score_amount(txn_amount: Decimal, target_amount: Decimal, config: ScoringConfig) -> float:
    """Score amount closeness (0-100).

    ``txn_amount`` is compared by magnitude. Tiers only ever step down as the
    difference grows, and the proportional tail is capped below the last tier.
    """
    diff = abs(abs(txn_amount) - target_amount)
    if diff <= Decimal("0.01"):
        return 100.0

    tolerance = max(abs(target_amount) * config.amount_percent, config.amount_absolute)
    if diff <= tolerance:
        return 90.0
    if diff <= Decimal("5.00"):
        return 70.0
    if target_amount <= Decimal("0"):
        return 0.0

    ratio = Decimal("100") - (diff / target_amount) * Decimal("100")
    return float(round(min(Decimal("60"), max(Decimal("0"), ratio)), 2))


def score_date(txn_date: date, target_date: date, config: ScoringConfig) -> float:
    """Score date proximity (0-100)."""
    # Scoring tiers:
    # - Same day: 100
    # - Within 3 days: 90
    # - Within config.date_days: 70
    # - Beyond config.date_days: decreasing score, capped at 60
    diff_days = abs((txn_date - target_date).days)
    if diff_days == 0:
        return 100.0
    if diff_days <= 3:
        return 90.0
    if diff_days <= config.date_days:
        return 70.0
    return float(min(60, max(0, 100 - diff_days * 10)))


def weighted_total(amount: float, date_score: float, description: float, config: ScoringConfig) -> int:
    """Compute the weighted total score, clamped to 0-100."""
    total = (
        Decimal(str(amount)) * config.weight_amount
        + Decimal(str(date_score)) * config.weight_date
        + Decimal(str(description)) * config.weight_description
    )
    return max(0, min(100, int(round(total, 0))))


def score_breakdown(
    transaction: BankTransaction,
    candidate_amount: Decimal,
    candidate_date: date,
    candidate_description: str | None,
    config: ScoringConfig | None = None,
) -> ScoreBreakdown:
    """Score every signal for a transaction against a candidate invoice/expense."""
    config = config or load_scoring_config()
    amount = score_amount(Decimal(str(transaction.amount)), Decimal(str(candidate_amount)), config)
    date_score = score_date(transaction.execution_date, candidate_date, config)
    texts = [transaction.description, transaction.counterparty_name]
    description = max(score_description(text, candidate_description) for text in texts)
    return ScoreBreakdown(
        amount=amount,
        date=date_score,
        description=description,
        total=weighted_total(amount, date_score, description, config),
    )


def calculate_match_score(
    transaction: BankTransaction,
    candidate_amount: Decimal,
    candidate_date: date,
    candidate_description: str | None,
    config: ScoringConfig | None = None,
) -> int:
    """Return the 0-100 match score of a transaction against a candidate."""
    return score_breakdown(
        transaction,
        candidate_amount,
        candidate_date,
        candidate_description,
        config,
    ).total


def classify_confidence(score: int) -> MatchConfidence:
    """Map a system score to its confidence tier.

    Manual matches never go through here; they are fixed at MANUAL.
    """
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise ValidationError(f"Match score must be an integer between 0 and 100, got {score!r}", "INVALID_SCORE")
    if score >= HIGH_CONFIDENCE_SCORE:
        return MatchConfidence.HIGH
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW
