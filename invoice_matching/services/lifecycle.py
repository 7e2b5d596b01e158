"""Match lifecycle: confirm, unmatch and transaction-side transitions.

Each mutation runs in one unit of work so the match row and the transaction's
reconciliation status always change together. Events are published only after
the commit succeeded.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from invoice_matching.errors import BusinessRuleError, NotFoundError, Result, returns_result
from invoice_matching.logger import get_logger
from invoice_matching.models import BankTransaction, InvoiceStatus, MatchedBy, ReconciliationStatus
from invoice_matching.repositories import Repositories, UnitOfWork
from invoice_matching.services import state_machine
from invoice_matching.services.events import (
    DomainEvent,
    EventBus,
    TransactionIgnored,
    TransactionReconciled,
    TransactionUnignored,
    TransactionUnreconciled,
)
from invoice_matching.services.match_records import (
    MatchRecord,
    create_auto_match,
    create_manual_match,
    parse_id,
)
from invoice_matching.services.scoring import ScoringConfig, load_scoring_config, score_breakdown

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConfirmRequest:
    """Request to reconcile a transaction against an invoice.

    ``score`` is what the caller saw when suggesting the pair. System
    confirmations never trust it; the score is recomputed from current data.
    """

    invoice_id: UUID | str
    transaction_id: UUID | str
    matched_by: MatchedBy = MatchedBy.SYSTEM
    user_id: str | None = None
    notes: str | None = None
    score: int | None = None


class MatchLifecycleManager:
    def __init__(
        self,
        unit_of_work: UnitOfWork,
        event_bus: EventBus | None = None,
        scoring_config: ScoringConfig | None = None,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.event_bus = event_bus
        self._scoring_config = scoring_config

    @property
    def scoring_config(self) -> ScoringConfig:
        return self._scoring_config or load_scoring_config()

    # ------------------------------------------------------------------
    # Confirm
    # ------------------------------------------------------------------

    @returns_result
    async def confirm(self, owner_id: UUID | str, request: ConfirmRequest) -> MatchRecord:
        owner = parse_id(owner_id, "owner_id")
        invoice_id = parse_id(request.invoice_id, "invoice_id")
        transaction_id = parse_id(request.transaction_id, "transaction_id")
        manual = request.matched_by == MatchedBy.USER

        async def confirm_in(repos: Repositories) -> MatchRecord:
            txn = await repos.transactions.find_by_id(owner, transaction_id, for_update=True)
            if txn is None:
                raise NotFoundError("Transaction", transaction_id, "TRANSACTION_NOT_FOUND")
            invoice = await repos.invoices.find_by_id(owner, invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id, "INVOICE_NOT_FOUND")
            if invoice.status == InvoiceStatus.CANCELLED:
                raise BusinessRuleError("Cannot match a cancelled invoice", "INVOICE_CANCELLED")

            # Status guards first; the score guard runs after the duplicate check
            next_status = state_machine.reconcile(txn.reconciliation_status, manual=True)
            if await repos.matches.exists(invoice.id, txn.id):
                raise BusinessRuleError("Invoice and transaction are already matched", "DUPLICATE_MATCH")

            if manual:
                record = create_manual_match(
                    invoice.id,
                    txn.id,
                    user_id=request.user_id or str(owner),
                    notes=request.notes,
                )
            else:
                breakdown = score_breakdown(
                    txn,
                    invoice.total,
                    invoice.reference_date,
                    invoice.match_text,
                    self.scoring_config,
                )
                state_machine.check_acceptance_score(breakdown.total)
                metadata: dict[str, object] = {"score_breakdown": breakdown.as_dict()}
                if request.score is not None and request.score != breakdown.total:
                    metadata["requested_score"] = request.score
                record = create_auto_match(invoice.id, txn.id, breakdown.total, metadata=metadata)
                if request.notes:
                    record = record.with_notes(request.notes)

            await repos.matches.create(record)
            txn.reconciliation_status = next_status
            await repos.transactions.save(txn)
            return record

        record = await self.unit_of_work.with_transaction(confirm_in)
        logger.info(
            "Match confirmed",
            owner_id=str(owner),
            match_id=str(record.id),
            invoice_id=str(record.invoice_id),
            transaction_id=str(record.transaction_id),
            match_score=record.match_score,
            confidence=record.match_confidence.value,
            matched_by=record.matched_by.value,
        )
        self._publish(
            TransactionReconciled(
                transaction_id=record.transaction_id,
                expense_or_invoice_id=record.invoice_id,
                match_score=record.match_score,
            )
        )
        return record

    async def confirm_manual(
        self,
        owner_id: UUID | str,
        invoice_id: UUID | str,
        transaction_id: UUID | str,
        *,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> Result[MatchRecord]:
        request = ConfirmRequest(
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            matched_by=MatchedBy.USER,
            user_id=user_id,
            notes=notes,
        )
        return await self.confirm(owner_id, request)

    async def confirm_auto(
        self,
        owner_id: UUID | str,
        invoice_id: UUID | str,
        transaction_id: UUID | str,
        *,
        score: int | None = None,
        notes: str | None = None,
    ) -> Result[MatchRecord]:
        request = ConfirmRequest(
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            matched_by=MatchedBy.SYSTEM,
            notes=notes,
            score=score,
        )
        return await self.confirm(owner_id, request)

    # ------------------------------------------------------------------
    # Unmatch
    # ------------------------------------------------------------------

    @returns_result
    async def unmatch(self, owner_id: UUID | str, match_id: UUID | str) -> MatchRecord:
        owner = parse_id(owner_id, "owner_id")
        match_uuid = parse_id(match_id, "match_id")

        async def unmatch_in(repos: Repositories) -> MatchRecord:
            record = await repos.matches.find_by_id(owner, match_uuid)
            if record is None:
                raise NotFoundError("Match", match_uuid, "MATCH_NOT_FOUND")
            return await self._remove(repos, owner, record)

        record = await self.unit_of_work.with_transaction(unmatch_in)
        self._after_unmatch(owner, record)
        return record

    @returns_result
    async def unmatch_pair(
        self,
        owner_id: UUID | str,
        invoice_id: UUID | str,
        transaction_id: UUID | str,
    ) -> MatchRecord:
        owner = parse_id(owner_id, "owner_id")
        invoice_uuid = parse_id(invoice_id, "invoice_id")
        transaction_uuid = parse_id(transaction_id, "transaction_id")

        async def unmatch_in(repos: Repositories) -> MatchRecord:
            record = await repos.matches.find_by_pair(owner, invoice_uuid, transaction_uuid)
            if record is None:
                raise NotFoundError("Match", f"{invoice_uuid}/{transaction_uuid}", "MATCH_NOT_FOUND")
            return await self._remove(repos, owner, record)

        record = await self.unit_of_work.with_transaction(unmatch_in)
        self._after_unmatch(owner, record)
        return record

    @returns_result
    async def unmatch_all_for_invoice(self, owner_id: UUID | str, invoice_id: UUID | str) -> int:
        owner = parse_id(owner_id, "owner_id")
        invoice_uuid = parse_id(invoice_id, "invoice_id")

        async def load(repos: Repositories) -> list[MatchRecord]:
            return await repos.matches.find_by_invoice(owner, invoice_uuid)

        records = await self.unit_of_work.with_transaction(load)
        return await self._unmatch_each(owner, records)

    @returns_result
    async def unmatch_all_for_transaction(self, owner_id: UUID | str, transaction_id: UUID | str) -> int:
        owner = parse_id(owner_id, "owner_id")
        transaction_uuid = parse_id(transaction_id, "transaction_id")

        async def load(repos: Repositories) -> list[MatchRecord]:
            record = await repos.matches.find_by_transaction(owner, transaction_uuid)
            return [record] if record else []

        records = await self.unit_of_work.with_transaction(load)
        return await self._unmatch_each(owner, records)

    async def _unmatch_each(self, owner: UUID, records: list[MatchRecord]) -> int:
        removed = 0
        for record in records:
            result = await self.unmatch(owner, record.id)
            if result.is_ok:
                removed += 1
            else:
                logger.warning(
                    "Failed to unmatch",
                    match_id=str(record.id),
                    error_code=result.error.code,
                    error=result.error.message,
                )
        return removed

    async def _remove(self, repos: Repositories, owner: UUID, record: MatchRecord) -> MatchRecord:
        txn = await repos.transactions.find_by_id(owner, record.transaction_id, for_update=True)
        await repos.matches.delete(record.id)
        if txn is not None and txn.reconciliation_status == ReconciliationStatus.MATCHED:
            txn.reconciliation_status = state_machine.unreconcile(txn.reconciliation_status)
            await repos.transactions.save(txn)
        elif txn is not None:
            logger.warning(
                "Removed match for transaction that was not reconciled",
                match_id=str(record.id),
                transaction_id=str(txn.id),
                status=txn.reconciliation_status.value,
            )
        return record

    def _after_unmatch(self, owner: UUID, record: MatchRecord) -> None:
        logger.info(
            "Match removed",
            owner_id=str(owner),
            match_id=str(record.id),
            invoice_id=str(record.invoice_id),
            transaction_id=str(record.transaction_id),
        )
        self._publish(TransactionUnreconciled(transaction_id=record.transaction_id))

    # ------------------------------------------------------------------
    # Transaction-side transitions
    # ------------------------------------------------------------------

    @returns_result
    async def ignore(self, owner_id: UUID | str, transaction_id: UUID | str) -> BankTransaction:
        txn = await self._transition(owner_id, transaction_id, state_machine.ignore)
        self._publish(TransactionIgnored(transaction_id=txn.id))
        return txn

    @returns_result
    async def unignore(self, owner_id: UUID | str, transaction_id: UUID | str) -> BankTransaction:
        txn = await self._transition(owner_id, transaction_id, state_machine.unignore)
        self._publish(TransactionUnignored(transaction_id=txn.id))
        return txn

    @returns_result
    async def unreconcile(self, owner_id: UUID | str, transaction_id: UUID | str) -> BankTransaction:
        """Revert a MATCHED transaction to PENDING, removing its match."""
        txn = await self._transition(owner_id, transaction_id, state_machine.unreconcile, drop_match=True)
        self._publish(TransactionUnreconciled(transaction_id=txn.id))
        return txn

    async def _transition(
        self,
        owner_id: UUID | str,
        transaction_id: UUID | str,
        apply: Callable[[ReconciliationStatus], ReconciliationStatus],
        *,
        drop_match: bool = False,
    ) -> BankTransaction:
        owner = parse_id(owner_id, "owner_id")
        transaction_uuid = parse_id(transaction_id, "transaction_id")

        async def transition_in(repos: Repositories) -> BankTransaction:
            txn = await repos.transactions.find_by_id(owner, transaction_uuid, for_update=True)
            if txn is None:
                raise NotFoundError("Transaction", transaction_uuid, "TRANSACTION_NOT_FOUND")
            previous = txn.reconciliation_status
            txn.reconciliation_status = apply(previous)
            if drop_match:
                record = await repos.matches.find_by_transaction(owner, txn.id)
                if record is not None:
                    await repos.matches.delete(record.id)
            await repos.transactions.save(txn)
            logger.info(
                "Transaction status changed",
                owner_id=str(owner),
                transaction_id=str(txn.id),
                from_status=previous.value,
                to_status=txn.reconciliation_status.value,
            )
            return txn

        return await self.unit_of_work.with_transaction(transition_in)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    @returns_result
    async def update_notes(self, owner_id: UUID | str, match_id: UUID | str, notes: str | None) -> MatchRecord:
        owner = parse_id(owner_id, "owner_id")
        match_uuid = parse_id(match_id, "match_id")

        async def update_in(repos: Repositories) -> MatchRecord:
            record = await repos.matches.find_by_id(owner, match_uuid)
            if record is None:
                raise NotFoundError("Match", match_uuid, "MATCH_NOT_FOUND")
            return await repos.matches.update(record.with_notes(notes))

        return await self.unit_of_work.with_transaction(update_in)

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus is None:
            return
        try:
            self.event_bus.publish(event)
        except Exception as exc:
            logger.warning("Failed to publish event", event_type=event.type, error=str(exc))
