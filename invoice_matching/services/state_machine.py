"""Reconciliation state machine for bank transactions.

    PENDING --reconcile--> MATCHED --unreconcile--> PENDING
    PENDING --ignore-----> IGNORED --unignore-----> PENDING

Transitions are pure: they return the next status or raise
``BusinessRuleError``. Persisting the new status together with the match
mutation is the caller's job.
"""

from enum import Enum

from invoice_matching.config import settings
from invoice_matching.errors import BusinessRuleError
from invoice_matching.models import ReconciliationStatus


class TransitionAction(str, Enum):
    RECONCILE = "reconcile"
    UNRECONCILE = "unreconcile"
    IGNORE = "ignore"
    UNIGNORE = "unignore"


_TRANSITIONS: dict[tuple[ReconciliationStatus, TransitionAction], ReconciliationStatus] = {
    (ReconciliationStatus.PENDING, TransitionAction.RECONCILE): ReconciliationStatus.MATCHED,
    (ReconciliationStatus.MATCHED, TransitionAction.UNRECONCILE): ReconciliationStatus.PENDING,
    (ReconciliationStatus.PENDING, TransitionAction.IGNORE): ReconciliationStatus.IGNORED,
    (ReconciliationStatus.IGNORED, TransitionAction.UNIGNORE): ReconciliationStatus.PENDING,
}

# Error reported for each rejected (status, action) pair
_REJECTIONS: dict[tuple[ReconciliationStatus, TransitionAction], tuple[str, str]] = {
    (ReconciliationStatus.MATCHED, TransitionAction.RECONCILE): (
        "TRANSACTION_ALREADY_RECONCILED",
        "Transaction is already reconciled",
    ),
    (ReconciliationStatus.IGNORED, TransitionAction.RECONCILE): (
        "TRANSACTION_IGNORED",
        "Cannot reconcile an ignored transaction. Un-ignore it first.",
    ),
    (ReconciliationStatus.PENDING, TransitionAction.UNRECONCILE): (
        "TRANSACTION_NOT_RECONCILED",
        "Transaction is not reconciled",
    ),
    (ReconciliationStatus.IGNORED, TransitionAction.UNRECONCILE): (
        "TRANSACTION_NOT_RECONCILED",
        "Transaction is not reconciled",
    ),
    (ReconciliationStatus.MATCHED, TransitionAction.IGNORE): (
        "TRANSACTION_IS_RECONCILED",
        "Cannot ignore a reconciled transaction. Unreconcile it first.",
    ),
    (ReconciliationStatus.IGNORED, TransitionAction.IGNORE): (
        "TRANSACTION_ALREADY_IGNORED",
        "Transaction is already ignored",
    ),
    (ReconciliationStatus.PENDING, TransitionAction.UNIGNORE): (
        "TRANSACTION_NOT_IGNORED",
        "Transaction is not ignored",
    ),
    (ReconciliationStatus.MATCHED, TransitionAction.UNIGNORE): (
        "TRANSACTION_NOT_IGNORED",
        "Transaction is not ignored",
    ),
}


def transition(
    status: ReconciliationStatus,
    action: TransitionAction,
    *,
    score: int | None = None,
    manual: bool = False,
) -> ReconciliationStatus:
    """Return the status reached by applying ``action`` to ``status``."""
    target = _TRANSITIONS.get((status, action))
    if target is None:
        code, message = _REJECTIONS[(status, action)]
        raise BusinessRuleError(message, code)

    if action == TransitionAction.RECONCILE and not manual:
        check_acceptance_score(score)
    return target


def check_acceptance_score(score: int | None) -> None:
    """Reject system reconciliations scored below the acceptance threshold."""
    threshold = settings.min_acceptance_score
    if score is None or score < threshold:
        raise BusinessRuleError(
            f"Transaction and invoice don't match well (score: {score}/100, minimum {threshold})",
            "POOR_MATCH_SCORE",
        )


def reconcile(status: ReconciliationStatus, *, score: int | None = None, manual: bool = False) -> ReconciliationStatus:
    return transition(status, TransitionAction.RECONCILE, score=score, manual=manual)


def unreconcile(status: ReconciliationStatus) -> ReconciliationStatus:
    return transition(status, TransitionAction.UNRECONCILE)


def ignore(status: ReconciliationStatus) -> ReconciliationStatus:
    return transition(status, TransitionAction.IGNORE)


def unignore(status: ReconciliationStatus) -> ReconciliationStatus:
    return transition(status, TransitionAction.UNIGNORE)
