"""Test data factories using factory_boy pattern.

Defaults are chosen so that a default invoice and a default transaction form a
perfect match (same amount, same day, same counterparty text).

Usage:
    txn = await BankTransactionFactory.create_async(db, owner_id, amount=Decimal("-12.50"))
    invoice = await InvoiceFactory.create_async(db, owner_id, total=Decimal("12.50"))
    await db.commit()
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_matching.models import (
    BankTransaction,
    Invoice,
    InvoiceStatus,
    InvoiceTransactionMatch,
    MatchConfidence,
    MatchedBy,
    ReconciliationStatus,
)

T = TypeVar("T")

MATCH_DATE = date(2024, 3, 15)


class AsyncFactoryMixin:
    """Mixin providing async database persistence for factories."""

    @classmethod
    def _build_kwargs(cls, *args, **kwargs) -> dict:
        return kwargs

    @classmethod
    async def create_async(cls, db: AsyncSession, *args, **kwargs) -> T:
        """Create and flush to database (transaction not committed)."""
        build_kwargs = cls._build_kwargs(*args, **kwargs)
        instance = cls.build(**build_kwargs)
        db.add(instance)
        await db.flush()
        await db.refresh(instance)
        return instance


class BankTransactionFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = BankTransaction

    id = factory.LazyFunction(uuid4)
    amount = Decimal("-45.00")
    currency = "EUR"
    execution_date = MATCH_DATE
    description = "Acme Supplies"
    counterparty_name = "Acme Supplies"
    reconciliation_status = ReconciliationStatus.PENDING
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, user_id: UUID, **kwargs) -> dict:
        return {"user_id": user_id, **kwargs}


class InvoiceFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Invoice

    id = factory.LazyFunction(uuid4)
    invoice_number = None
    vendor_name = "Acme Supplies"
    description = None
    total = Decimal("45.00")
    currency = "EUR"
    issue_date = MATCH_DATE
    payment_reference = None
    status = InvoiceStatus.PENDING
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, user_id: UUID, **kwargs) -> dict:
        return {"user_id": user_id, **kwargs}


class MatchFactory(factory.Factory, AsyncFactoryMixin):
    """Match rows inserted directly, bypassing the lifecycle manager."""

    class Meta:
        model = InvoiceTransactionMatch

    id = factory.LazyFunction(uuid4)
    match_score = 95
    match_confidence = MatchConfidence.HIGH
    matched_by = MatchedBy.SYSTEM
    matched_by_user_id = None
    notes = None
    match_metadata = None
    matched_at = factory.LazyFunction(lambda: datetime.now(UTC))
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, invoice_id: UUID, transaction_id: UUID, **kwargs) -> dict:
        return {"invoice_id": invoice_id, "transaction_id": transaction_id, **kwargs}


async def create_matched_pair(
    db: AsyncSession,
    user_id: UUID,
    *,
    score: int = 95,
    confidence: MatchConfidence = MatchConfidence.HIGH,
    matched_by: MatchedBy = MatchedBy.SYSTEM,
    **txn_kwargs,
) -> tuple[Invoice, BankTransaction, InvoiceTransactionMatch]:
    """Invoice + MATCHED transaction + their match row, committed."""
    txn = await BankTransactionFactory.create_async(
        db,
        user_id,
        reconciliation_status=ReconciliationStatus.MATCHED,
        **txn_kwargs,
    )
    invoice = await InvoiceFactory.create_async(db, user_id)
    match = await MatchFactory.create_async(
        db,
        invoice.id,
        txn.id,
        match_score=score,
        match_confidence=confidence,
        matched_by=matched_by,
        matched_by_user_id=str(user_id) if matched_by == MatchedBy.USER else None,
    )
    await db.commit()
    return invoice, txn, match
