"""Common exception utilities for FastAPI routers."""

from typing import NoReturn, TypeVar

from fastapi import HTTPException, status

from invoice_matching.errors import (
    BusinessRuleError,
    NotFoundError,
    PersistenceError,
    ReconciliationError,
    Result,
    ValidationError,
)

T = TypeVar("T")


def _raise(status_code: int, detail: str | dict, cause: Exception | None) -> NoReturn:
    raise HTTPException(status_code=status_code, detail=detail) from cause


def raise_not_found(detail: str | dict, *, cause: Exception | None = None) -> NoReturn:
    _raise(status.HTTP_404_NOT_FOUND, detail, cause)


def raise_bad_request(detail: str | dict, *, cause: Exception | None = None) -> NoReturn:
    _raise(status.HTTP_400_BAD_REQUEST, detail, cause)


def raise_conflict(detail: str | dict, *, cause: Exception | None = None) -> NoReturn:
    _raise(status.HTTP_409_CONFLICT, detail, cause)


def raise_service_unavailable(detail: str | dict, *, cause: Exception | None = None) -> NoReturn:
    _raise(status.HTTP_503_SERVICE_UNAVAILABLE, detail, cause)


def raise_for_error(error: ReconciliationError) -> NoReturn:
    """Translate an engine error into the matching HTTP error."""
    detail: dict = {"code": error.code, "message": error.message}
    if isinstance(error, ValidationError):
        if error.fields:
            detail["fields"] = error.fields
        raise_bad_request(detail, cause=error)
    if isinstance(error, NotFoundError):
        raise_not_found(detail, cause=error)
    if isinstance(error, BusinessRuleError):
        raise_conflict(detail, cause=error)
    if isinstance(error, PersistenceError):
        raise_service_unavailable(detail, cause=error)
    _raise(status.HTTP_500_INTERNAL_SERVER_ERROR, detail, error)


def unwrap_or_raise(result: Result[T]) -> T:
    """Return the result value or raise the HTTP error for its failure."""
    if result.error is not None:
        raise_for_error(result.error)
    return result.value  # type: ignore[return-value]
