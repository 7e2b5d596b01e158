"""Batch confirm/unmatch with per-item isolation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from invoice_matching.errors import Result, ValidationError
from invoice_matching.logger import get_logger, log_timing
from invoice_matching.services.lifecycle import ConfirmRequest, MatchLifecycleManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchItemError:
    id: str
    code: str
    reason: str


@dataclass
class BatchResult:
    """Outcome of a batch. ``succeeded + failed`` always equals the input size."""

    succeeded: int = 0
    failed: int = 0
    errors: list[BatchItemError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def record(self, item_id: object, result: Result) -> None:
        if result.is_ok:
            self.succeeded += 1
            return
        self.failed += 1
        self.errors.append(BatchItemError(id=str(item_id), code=result.error.code, reason=result.error.message))


class BatchCoordinator:
    """Runs batch items sequentially, each in its own unit of work.

    A failing item is captured in ``errors`` and never rolls back or stops the
    items around it.
    """

    def __init__(self, manager: MatchLifecycleManager) -> None:
        self.manager = manager

    async def confirm_batch(self, owner_id: UUID | str, items: Iterable[ConfirmRequest]) -> BatchResult:
        items = list(items)
        result = BatchResult()
        async with log_timing("confirm_batch", logger=logger, size=len(items)):
            for item in items:
                if not isinstance(item, ConfirmRequest):
                    result.record(item, Result.fail(ValidationError("Invalid batch item", "INVALID_BATCH_ITEM")))
                    continue
                result.record(item.transaction_id, await self.manager.confirm(owner_id, item))
        self._log_summary("confirm_batch", owner_id, result)
        return result

    async def unmatch_batch(self, owner_id: UUID | str, match_ids: Iterable[UUID | str]) -> BatchResult:
        match_ids = list(match_ids)
        result = BatchResult()
        async with log_timing("unmatch_batch", logger=logger, size=len(match_ids)):
            for match_id in match_ids:
                result.record(match_id, await self.manager.unmatch(owner_id, match_id))
        self._log_summary("unmatch_batch", owner_id, result)
        return result

    def _log_summary(self, operation: str, owner_id: UUID | str, result: BatchResult) -> None:
        log = logger.warning if result.failed else logger.info
        log(
            "Batch finished",
            operation=operation,
            owner_id=str(owner_id),
            succeeded=result.succeeded,
            failed=result.failed,
            error_codes=sorted({error.code for error in result.errors}),
        )
