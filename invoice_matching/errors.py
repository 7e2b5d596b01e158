"""Typed errors and the result wrapper returned across the engine boundary.

Engine internals raise ``ReconciliationError`` subclasses; public engine
methods are decorated with ``returns_result`` so callers always receive a
``Result`` instead of an exception.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, Generic, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from invoice_matching.logger import get_logger, log_exception

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


class ReconciliationError(Exception):
    """Base class for every error the engine reports."""

    default_code = "RECONCILIATION_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(ReconciliationError):
    """Missing or malformed input; correctable by the caller."""

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        fields: list[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(message, code)
        self.fields = fields or []


class NotFoundError(ReconciliationError):
    """Invoice, transaction or match does not exist for the owner."""

    default_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any, code: str | None = None) -> None:
        super().__init__(f"{resource} not found: {resource_id}", code)
        self.resource = resource
        self.resource_id = str(resource_id)


class BusinessRuleError(ReconciliationError):
    """State machine guard or matching rule violation."""

    default_code = "BUSINESS_RULE_VIOLATION"


class PersistenceError(ReconciliationError):
    """Storage failure. Not retried by the engine."""

    default_code = "PERSISTENCE_ERROR"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success value or exactly one typed error."""

    value: T | None = None
    error: ReconciliationError | None = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, error: ReconciliationError) -> Result[T]:
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_fail(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def returns_result(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[Result[T]]]:
    """Convert raised engine errors into a failed ``Result``.

    ``SQLAlchemyError`` is reported as ``PersistenceError``; anything else is a
    programming error and propagates.
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Result[T]:
        try:
            return Result.ok(await func(*args, **kwargs))
        except ReconciliationError as exc:
            return Result.fail(exc)
        except SQLAlchemyError as exc:
            log_exception(logger, exc, "Persistence failure", operation=func.__name__)
            return Result.fail(PersistenceError(f"Storage failure during {func.__name__}"))

    return wrapper
