"""Domain events and the best-effort event bus.

Publishing never blocks the caller: events go onto a bounded queue drained by
a dedicated consumer task. Handler failures and queue overflow are logged and
otherwise ignored, so a committed state transition is never undone by event
delivery.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from invoice_matching.config import settings
from invoice_matching.logger import get_logger, log_exception

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for events emitted by the reconciliation engine."""

    source: str = field(default="finance", kw_only=True)

    @property
    def type(self) -> str:
        return type(self).__name__

    def payload(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("source", None)
        return data


@dataclass(frozen=True)
class TransactionReconciled(DomainEvent):
    transaction_id: UUID
    expense_or_invoice_id: UUID
    match_score: int
    reconciled_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class TransactionIgnored(DomainEvent):
    transaction_id: UUID
    ignored_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class TransactionUnreconciled(DomainEvent):
    transaction_id: UUID
    unreconciled_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class TransactionUnignored(DomainEvent):
    transaction_id: UUID
    unignored_at: datetime = field(default_factory=_utc_now)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """In-process, queue-backed event bus with a single consumer task."""

    def __init__(self, maxsize: int | None = None) -> None:
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize or settings.event_queue_size)
        self._handlers: list[EventHandler] = []
        self._consumer: asyncio.Task[None] | None = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        """Enqueue an event without waiting for delivery."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Event queue full - dropping event",
                event_type=event.type,
                queue_size=self._queue.qsize(),
                dropped=self.dropped,
            )

    async def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="event-bus-consumer")
        logger.info("Event bus consumer started", handlers=len(self._handlers))

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._consumer is None:
            return
        await self.drain()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        logger.info("Event bus consumer stopped")

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for handler in self._handlers:
                    try:
                        await handler(event)
                    except Exception as exc:
                        log_exception(
                            logger,
                            exc,
                            "Event handler failed",
                            event_type=event.type,
                            handler=getattr(handler, "__name__", repr(handler)),
                        )
            finally:
                self._queue.task_done()


async def log_event(event: DomainEvent) -> None:
    """Default subscriber: record every event in the structured log."""
    logger.info("Domain event", event_type=event.type, source=event.source, **_loggable(event.payload()))


def _loggable(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: str(value) if isinstance(value, UUID | datetime) else value for key, value in payload.items()}
