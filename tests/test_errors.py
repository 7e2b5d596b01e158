"""Tests for the result wrapper and HTTP error mapping."""

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from invoice_matching.errors import (
    BusinessRuleError,
    NotFoundError,
    PersistenceError,
    ReconciliationError,
    Result,
    ValidationError,
    returns_result,
)
from invoice_matching.utils.exceptions import raise_for_error, unwrap_or_raise


@pytest.mark.asyncio
async def test_returns_result_wraps_values_and_engine_errors() -> None:
    @returns_result
    async def succeed() -> int:
        return 7

    @returns_result
    async def reject() -> int:
        raise BusinessRuleError("nope", "TRANSACTION_IGNORED")

    ok = await succeed()
    failed = await reject()

    assert ok.is_ok and ok.value == 7
    assert failed.is_fail
    assert failed.error.code == "TRANSACTION_IGNORED"
    with pytest.raises(BusinessRuleError):
        failed.unwrap()


@pytest.mark.asyncio
async def test_returns_result_maps_storage_failures() -> None:
    @returns_result
    async def broken_storage() -> None:
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    result = await broken_storage()

    assert isinstance(result.error, PersistenceError)
    assert result.error.code == "PERSISTENCE_ERROR"
    assert "broken_storage" in result.error.message


@pytest.mark.asyncio
async def test_returns_result_lets_programming_errors_propagate() -> None:
    @returns_result
    async def buggy() -> None:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await buggy()


def test_error_codes_default_per_kind() -> None:
    assert ValidationError("x").code == "VALIDATION_ERROR"
    assert NotFoundError("Match", "abc").message == "Match not found: abc"
    assert BusinessRuleError("x").code == "BUSINESS_RULE_VIOLATION"


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (ValidationError("bad", "INVALID_TOLERANCE"), 400),
        (NotFoundError("Invoice", "1", "INVOICE_NOT_FOUND"), 404),
        (BusinessRuleError("taken", "DUPLICATE_MATCH"), 409),
        (PersistenceError("down"), 503),
        (ReconciliationError("other"), 500),
    ],
)
def test_raise_for_error_status_codes(error, status_code) -> None:
    with pytest.raises(HTTPException) as exc_info:
        raise_for_error(error)
    assert exc_info.value.status_code == status_code
    assert exc_info.value.detail["code"] == error.code


def test_validation_fields_are_exposed() -> None:
    error = ValidationError("bad", "INVALID_ID", fields=[{"field": "invoice_id", "message": "must be a UUID"}])
    with pytest.raises(HTTPException) as exc_info:
        unwrap_or_raise(Result.fail(error))
    assert exc_info.value.detail["fields"] == error.fields


def test_unwrap_or_raise_returns_value() -> None:
    assert unwrap_or_raise(Result.ok("value")) == "value"
