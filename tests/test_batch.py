"""Tests for batch confirm and unmatch."""

from decimal import Decimal
from uuid import uuid4

import pytest

from invoice_matching.models import BankTransaction, InvoiceTransactionMatch, MatchedBy, ReconciliationStatus
from invoice_matching.services.lifecycle import ConfirmRequest
from tests.factories import BankTransactionFactory, InvoiceFactory, create_matched_pair


@pytest.mark.asyncio
async def test_confirm_batch_isolates_failures(batch, db, fetch, owner_id) -> None:
    good_invoice = await InvoiceFactory.create_async(db, owner_id)
    good_txn = await BankTransactionFactory.create_async(db, owner_id)
    manual_invoice = await InvoiceFactory.create_async(db, owner_id, total=Decimal("310.00"))
    manual_txn = await BankTransactionFactory.create_async(db, owner_id, amount=Decimal("-12.00"))
    ignored_txn = await BankTransactionFactory.create_async(
        db, owner_id, reconciliation_status=ReconciliationStatus.IGNORED
    )
    await db.commit()
    missing_txn = uuid4()

    result = await batch.confirm_batch(
        owner_id,
        [
            ConfirmRequest(invoice_id=good_invoice.id, transaction_id=good_txn.id),
            ConfirmRequest(invoice_id=good_invoice.id, transaction_id=ignored_txn.id),
            ConfirmRequest(invoice_id=good_invoice.id, transaction_id=missing_txn),
            ConfirmRequest(invoice_id=manual_invoice.id, transaction_id=manual_txn.id, matched_by=MatchedBy.USER),
        ],
    )

    assert result.succeeded == 2
    assert result.failed == 2
    assert result.total == 4
    assert [(e.id, e.code) for e in result.errors] == [
        (str(ignored_txn.id), "TRANSACTION_IGNORED"),
        (str(missing_txn), "TRANSACTION_NOT_FOUND"),
    ]
    assert all(e.reason for e in result.errors)
    assert (await fetch(BankTransaction, good_txn.id)).reconciliation_status == ReconciliationStatus.MATCHED
    assert (await fetch(BankTransaction, manual_txn.id)).reconciliation_status == ReconciliationStatus.MATCHED
    assert (await fetch(BankTransaction, ignored_txn.id)).reconciliation_status == ReconciliationStatus.IGNORED


@pytest.mark.asyncio
async def test_confirm_batch_skips_reconciled_transaction(batch, db, fetch, owner_id) -> None:
    first = await InvoiceFactory.create_async(db, owner_id)
    third = await InvoiceFactory.create_async(db, owner_id)
    first_txn = await BankTransactionFactory.create_async(db, owner_id)
    third_txn = await BankTransactionFactory.create_async(db, owner_id)
    _, reconciled_txn, _ = await create_matched_pair(db, owner_id)
    stray = await InvoiceFactory.create_async(db, owner_id)
    await db.commit()

    result = await batch.confirm_batch(
        owner_id,
        [
            ConfirmRequest(invoice_id=first.id, transaction_id=first_txn.id),
            ConfirmRequest(invoice_id=stray.id, transaction_id=reconciled_txn.id),
            ConfirmRequest(invoice_id=third.id, transaction_id=third_txn.id),
        ],
    )

    assert (result.succeeded, result.failed) == (2, 1)
    assert result.errors[0].id == str(reconciled_txn.id)
    assert result.errors[0].code == "TRANSACTION_ALREADY_RECONCILED"
    for txn in (first_txn, third_txn):
        assert (await fetch(BankTransaction, txn.id)).reconciliation_status == ReconciliationStatus.MATCHED


@pytest.mark.asyncio
async def test_confirm_batch_second_claim_on_same_transaction_fails(batch, db, owner_id) -> None:
    first = await InvoiceFactory.create_async(db, owner_id)
    second = await InvoiceFactory.create_async(db, owner_id)
    txn = await BankTransactionFactory.create_async(db, owner_id)
    await db.commit()

    result = await batch.confirm_batch(
        owner_id,
        [
            ConfirmRequest(invoice_id=first.id, transaction_id=txn.id),
            ConfirmRequest(invoice_id=second.id, transaction_id=txn.id),
        ],
    )

    assert result.succeeded == 1
    assert result.errors[0].code == "TRANSACTION_ALREADY_RECONCILED"


@pytest.mark.asyncio
async def test_confirm_batch_records_invalid_items(batch, owner_id) -> None:
    result = await batch.confirm_batch(
        owner_id,
        [
            {"invoice_id": "x", "transaction_id": "y"},
            ConfirmRequest(invoice_id="not-a-uuid", transaction_id="also-not"),
        ],
    )

    assert result.succeeded == 0
    assert result.failed == 2
    assert [e.code for e in result.errors] == ["INVALID_BATCH_ITEM", "INVALID_ID"]


@pytest.mark.asyncio
async def test_empty_batches(batch, owner_id) -> None:
    confirmed = await batch.confirm_batch(owner_id, [])
    unmatched = await batch.unmatch_batch(owner_id, [])

    assert (confirmed.succeeded, confirmed.failed, confirmed.errors) == (0, 0, [])
    assert unmatched.total == 0


@pytest.mark.asyncio
async def test_unmatch_batch(batch, db, fetch, owner_id, other_owner_id) -> None:
    _, txn, match = await create_matched_pair(db, owner_id)
    _, foreign_txn, foreign_match = await create_matched_pair(db, other_owner_id)
    missing = uuid4()

    result = await batch.unmatch_batch(owner_id, [match.id, missing, foreign_match.id])

    assert result.succeeded == 1
    assert result.failed == 2
    assert [e.id for e in result.errors] == [str(missing), str(foreign_match.id)]
    assert {e.code for e in result.errors} == {"MATCH_NOT_FOUND"}
    assert await fetch(InvoiceTransactionMatch, match.id) is None
    assert await fetch(InvoiceTransactionMatch, foreign_match.id) is not None
    assert (await fetch(BankTransaction, txn.id)).reconciliation_status == ReconciliationStatus.PENDING
    assert (await fetch(BankTransaction, foreign_txn.id)).reconciliation_status == ReconciliationStatus.MATCHED
