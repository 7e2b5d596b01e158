"""Tests for reconciliation status transitions."""

import pytest

from invoice_matching.errors import BusinessRuleError
from invoice_matching.models import ReconciliationStatus
from invoice_matching.services import state_machine
from invoice_matching.services.state_machine import TransitionAction, transition

PENDING = ReconciliationStatus.PENDING
MATCHED = ReconciliationStatus.MATCHED
IGNORED = ReconciliationStatus.IGNORED


@pytest.mark.parametrize(
    ("status", "action", "expected"),
    [
        (PENDING, TransitionAction.IGNORE, IGNORED),
        (MATCHED, TransitionAction.UNRECONCILE, PENDING),
        (IGNORED, TransitionAction.UNIGNORE, PENDING),
    ],
)
def test_allowed_transitions(status, action, expected) -> None:
    assert transition(status, action) == expected


def test_reconcile_requires_acceptable_score() -> None:
    assert state_machine.reconcile(PENDING, score=30) == MATCHED
    with pytest.raises(BusinessRuleError) as exc_info:
        state_machine.reconcile(PENDING, score=29)
    assert exc_info.value.code == "POOR_MATCH_SCORE"


def test_reconcile_without_score_is_rejected_unless_manual() -> None:
    with pytest.raises(BusinessRuleError):
        state_machine.reconcile(PENDING)
    assert state_machine.reconcile(PENDING, manual=True) == MATCHED


@pytest.mark.parametrize(
    ("status", "action", "code"),
    [
        (MATCHED, TransitionAction.RECONCILE, "TRANSACTION_ALREADY_RECONCILED"),
        (IGNORED, TransitionAction.RECONCILE, "TRANSACTION_IGNORED"),
        (PENDING, TransitionAction.UNRECONCILE, "TRANSACTION_NOT_RECONCILED"),
        (IGNORED, TransitionAction.UNRECONCILE, "TRANSACTION_NOT_RECONCILED"),
        (MATCHED, TransitionAction.IGNORE, "TRANSACTION_IS_RECONCILED"),
        (IGNORED, TransitionAction.IGNORE, "TRANSACTION_ALREADY_IGNORED"),
        (PENDING, TransitionAction.UNIGNORE, "TRANSACTION_NOT_IGNORED"),
        (MATCHED, TransitionAction.UNIGNORE, "TRANSACTION_NOT_IGNORED"),
    ],
)
def test_rejected_transitions(status, action, code) -> None:
    with pytest.raises(BusinessRuleError) as exc_info:
        transition(status, action, score=100)
    assert exc_info.value.code == code


def test_status_guard_runs_before_score_guard() -> None:
    with pytest.raises(BusinessRuleError) as exc_info:
        state_machine.reconcile(MATCHED, score=0)
    assert exc_info.value.code == "TRANSACTION_ALREADY_RECONCILED"


def test_acceptance_threshold_follows_settings(monkeypatch) -> None:
    monkeypatch.setattr(state_machine.settings, "min_acceptance_score", 60)
    with pytest.raises(BusinessRuleError):
        state_machine.check_acceptance_score(59)
    state_machine.check_acceptance_score(60)
