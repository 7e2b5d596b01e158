"""Structured logging for the matching engine.

- structlog on top of stdlib logging, JSON in production, console in debug
- ``log_timing`` for timing engine operations (sync or async ``with``)
- ``log_exception`` for failures that are reported rather than raised
"""

import logging
import sys
import time
from types import TracebackType
from typing import Any

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

from invoice_matching.config import settings

SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.format_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _select_renderer() -> Processor:
    if settings.debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Route structlog through a single stdout handler on the root logger."""
    structlog.configure(
        processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_select_renderer(),
            foreign_pre_chain=SHARED_PROCESSORS,
        )
    )
    logging.basicConfig(
        handlers=[handler],
        level=logging.DEBUG if settings.debug else logging.INFO,
    )


def get_logger(name: str | None = None) -> BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)


class log_timing:
    """Log how long a block took, whether it finished or raised.

    Usage:
        with log_timing("score_candidates", logger=logger, invoice_id=str(invoice.id)) as ctx:
            ctx["scored"] = len(candidates)

        async with log_timing("confirm_batch", logger=logger, size=len(items)):
            ...

    The yielded dict is merged into the log line and gains ``duration_ms``
    on exit.
    """

    def __init__(
        self,
        operation: str,
        logger: BoundLogger | None = None,
        level: str = "info",
        **context: Any,
    ) -> None:
        self.operation = operation
        self.log = logger or get_logger(__name__)
        self.level = level
        self.context = context
        self.extra: dict[str, Any] = {}
        self._start = 0.0

    def __enter__(self) -> dict[str, Any]:
        self._start = time.perf_counter()
        return self.extra

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        duration_ms = round((time.perf_counter() - self._start) * 1000, 2)
        fields = {**self.context, **self.extra, "duration_ms": duration_ms}
        if exc_type is not None:
            fields["failed"] = True
        self.extra["duration_ms"] = duration_ms
        getattr(self.log, self.level, self.log.info)(
            f"{self.operation} completed",
            operation=self.operation,
            **fields,
        )

    async def __aenter__(self) -> dict[str, Any]:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc, tb)


def log_exception(
    logger: BoundLogger,
    exc: BaseException,
    context: str,
    *,
    level: str = "error",
    include_traceback: bool = True,
    **extra: Any,
) -> None:
    """Log an exception with its type, module and any engine error code.

    Usage:
        except SQLAlchemyError as exc:
            log_exception(logger, exc, "Persistence failure", operation="confirm")
    """
    fields: dict[str, Any] = {
        "error": str(exc),
        "error_type": type(exc).__name__,
        "error_module": type(exc).__module__,
        **extra,
    }
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        fields["error_code"] = code
    if include_traceback:
        fields["exc_info"] = exc
    getattr(logger, level, logger.error)(context, **fields)
