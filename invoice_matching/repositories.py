"""SQLAlchemy repositories and the unit of work used by the matching engine.

Every query is scoped to the owning user. Matches carry no owner column of
their own, so they are scoped through the transaction they reconcile.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Literal, TypeVar
from uuid import UUID

from sqlalchemy import Select, delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invoice_matching.database import get_session_maker
from invoice_matching.errors import BusinessRuleError
from invoice_matching.logger import get_logger
from invoice_matching.models import (
    BankTransaction,
    Invoice,
    InvoiceStatus,
    InvoiceTransactionMatch,
    MatchConfidence,
    MatchedBy,
    ReconciliationStatus,
)
from invoice_matching.services.match_records import MatchRecord

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchQuery:
    """Filters, sort and pagination for listing matches."""

    invoice_id: UUID | None = None
    transaction_id: UUID | None = None
    match_confidence: MatchConfidence | None = None
    matched_by: MatchedBy | None = None
    matched_by_user_id: str | None = None
    min_score: int | None = None
    max_score: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    sort_by: Literal["matched_at", "match_score"] = "matched_at"
    sort_order: Literal["asc", "desc"] = "desc"
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class MatchStatistics:
    total: int = 0
    auto: int = 0
    manual: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    needing_review: int = 0


class SqlInvoiceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, owner_id: UUID, invoice_id: UUID) -> Invoice | None:
        result = await self.session.execute(
            select(Invoice).where(Invoice.id == invoice_id).where(Invoice.user_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def find_all(
        self,
        owner_id: UUID,
        *,
        unmatched_only: bool = False,
        include_cancelled: bool = False,
    ) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.user_id == owner_id)
        if not include_cancelled:
            stmt = stmt.where(Invoice.status != InvoiceStatus.CANCELLED)
        if unmatched_only:
            stmt = stmt.where(
                ~exists().where(InvoiceTransactionMatch.invoice_id == Invoice.id)
            )
        result = await self.session.execute(stmt.order_by(Invoice.created_at.asc()))
        return list(result.scalars().all())


class SqlBankTransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        *,
        for_update: bool = False,
    ) -> BankTransaction | None:
        stmt = (
            select(BankTransaction)
            .where(BankTransaction.id == transaction_id)
            .where(BankTransaction.user_id == owner_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_reconciliation_status(
        self,
        owner_id: UUID,
        status: ReconciliationStatus,
    ) -> list[BankTransaction]:
        result = await self.session.execute(
            select(BankTransaction)
            .where(BankTransaction.user_id == owner_id)
            .where(BankTransaction.reconciliation_status == status)
            .order_by(BankTransaction.execution_date.desc())
        )
        return list(result.scalars().all())

    async def find_potential_matches(
        self,
        owner_id: UUID,
        target_amount: Decimal,
        target_date: date,
        tolerance_days: int,
        limit: int | None = None,
    ) -> list[BankTransaction]:
        """Pending outflows within one unit of the amount and the date window.

        ``limit=None`` returns every row in the window.
        """
        amount = Decimal(str(target_amount))
        stmt = (
            select(BankTransaction)
            .where(BankTransaction.user_id == owner_id)
            .where(BankTransaction.reconciliation_status == ReconciliationStatus.PENDING)
            .where(BankTransaction.amount < 0)
            .where(BankTransaction.amount >= -(amount + Decimal("1")))
            .where(BankTransaction.amount <= -(amount - Decimal("1")))
            .where(BankTransaction.execution_date >= target_date - timedelta(days=tolerance_days))
            .where(BankTransaction.execution_date <= target_date + timedelta(days=tolerance_days))
            .order_by(BankTransaction.execution_date.desc(), BankTransaction.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, transaction: BankTransaction) -> BankTransaction:
        self.session.add(transaction)
        await self.session.flush()
        return transaction


class SqlMatchRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _owned(self, owner_id: UUID) -> Select[tuple[InvoiceTransactionMatch]]:
        return (
            select(InvoiceTransactionMatch)
            .join(BankTransaction, BankTransaction.id == InvoiceTransactionMatch.transaction_id)
            .where(BankTransaction.user_id == owner_id)
        )

    async def _one(self, stmt: Select[tuple[InvoiceTransactionMatch]]) -> MatchRecord | None:
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return MatchRecord.from_model(row) if row else None

    async def _many(self, stmt: Select[tuple[InvoiceTransactionMatch]]) -> list[MatchRecord]:
        rows = (await self.session.execute(stmt)).scalars().all()
        return [MatchRecord.from_model(row) for row in rows]

    async def find_by_id(self, owner_id: UUID, match_id: UUID) -> MatchRecord | None:
        return await self._one(self._owned(owner_id).where(InvoiceTransactionMatch.id == match_id))

    async def find_by_pair(self, owner_id: UUID, invoice_id: UUID, transaction_id: UUID) -> MatchRecord | None:
        return await self._one(
            self._owned(owner_id)
            .where(InvoiceTransactionMatch.invoice_id == invoice_id)
            .where(InvoiceTransactionMatch.transaction_id == transaction_id)
        )

    async def find_by_invoice(self, owner_id: UUID, invoice_id: UUID) -> list[MatchRecord]:
        return await self._many(
            self._owned(owner_id)
            .where(InvoiceTransactionMatch.invoice_id == invoice_id)
            .order_by(InvoiceTransactionMatch.matched_at.desc())
        )

    async def find_by_transaction(self, owner_id: UUID, transaction_id: UUID) -> MatchRecord | None:
        return await self._one(self._owned(owner_id).where(InvoiceTransactionMatch.transaction_id == transaction_id))

    async def exists(self, invoice_id: UUID, transaction_id: UUID) -> bool:
        result = await self.session.execute(
            select(
                exists()
                .where(InvoiceTransactionMatch.invoice_id == invoice_id)
                .where(InvoiceTransactionMatch.transaction_id == transaction_id)
            )
        )
        return bool(result.scalar())

    async def create(self, record: MatchRecord) -> MatchRecord:
        """Insert a match; a unique violation means the transaction is taken."""
        self.session.add(record.to_model())
        try:
            await self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "Match insert rejected by unique constraint",
                invoice_id=str(record.invoice_id),
                transaction_id=str(record.transaction_id),
                error=str(exc.orig),
            )
            raise BusinessRuleError(
                "Transaction is already reconciled",
                "TRANSACTION_ALREADY_RECONCILED",
            ) from exc
        return record

    async def update(self, record: MatchRecord) -> MatchRecord:
        await self.session.execute(
            update(InvoiceTransactionMatch)
            .where(InvoiceTransactionMatch.id == record.id)
            .values(notes=record.notes, match_metadata=dict(record.metadata) or None)
        )
        return record

    async def delete(self, match_id: UUID) -> bool:
        result = await self.session.execute(
            delete(InvoiceTransactionMatch).where(InvoiceTransactionMatch.id == match_id)
        )
        return result.rowcount > 0

    def _filtered(self, owner_id: UUID, query: MatchQuery) -> Select[tuple[InvoiceTransactionMatch]]:
        stmt = self._owned(owner_id)
        if query.invoice_id is not None:
            stmt = stmt.where(InvoiceTransactionMatch.invoice_id == query.invoice_id)
        if query.transaction_id is not None:
            stmt = stmt.where(InvoiceTransactionMatch.transaction_id == query.transaction_id)
        if query.match_confidence is not None:
            stmt = stmt.where(InvoiceTransactionMatch.match_confidence == query.match_confidence)
        if query.matched_by is not None:
            stmt = stmt.where(InvoiceTransactionMatch.matched_by == query.matched_by)
        if query.matched_by_user_id is not None:
            stmt = stmt.where(InvoiceTransactionMatch.matched_by_user_id == query.matched_by_user_id)
        if query.min_score is not None:
            stmt = stmt.where(InvoiceTransactionMatch.match_score >= query.min_score)
        if query.max_score is not None:
            stmt = stmt.where(InvoiceTransactionMatch.match_score <= query.max_score)
        if query.date_from is not None:
            stmt = stmt.where(InvoiceTransactionMatch.matched_at >= query.date_from)
        if query.date_to is not None:
            stmt = stmt.where(InvoiceTransactionMatch.matched_at <= query.date_to)
        return stmt

    async def find_all(self, owner_id: UUID, query: MatchQuery) -> list[MatchRecord]:
        column = (
            InvoiceTransactionMatch.match_score
            if query.sort_by == "match_score"
            else InvoiceTransactionMatch.matched_at
        )
        order = column.asc() if query.sort_order == "asc" else column.desc()
        return await self._many(
            self._filtered(owner_id, query)
            .order_by(order, InvoiceTransactionMatch.id)
            .limit(query.limit)
            .offset(query.offset)
        )

    async def count(self, owner_id: UUID, query: MatchQuery | None = None) -> int:
        subquery = self._filtered(owner_id, query or MatchQuery()).subquery()
        result = await self.session.execute(select(func.count()).select_from(subquery))
        return int(result.scalar_one())

    async def find_needing_review(self, owner_id: UUID, *, limit: int = 50, offset: int = 0) -> list[MatchRecord]:
        return await self._many(
            self._owned(owner_id)
            .where(InvoiceTransactionMatch.match_confidence.in_([MatchConfidence.MEDIUM, MatchConfidence.LOW]))
            .order_by(InvoiceTransactionMatch.match_score.desc(), InvoiceTransactionMatch.id)
            .limit(limit)
            .offset(offset)
        )

    async def get_statistics(self, owner_id: UUID) -> MatchStatistics:
        result = await self.session.execute(
            select(
                InvoiceTransactionMatch.match_confidence,
                InvoiceTransactionMatch.matched_by,
                func.count(InvoiceTransactionMatch.id),
            )
            .join(BankTransaction, BankTransaction.id == InvoiceTransactionMatch.transaction_id)
            .where(BankTransaction.user_id == owner_id)
            .group_by(InvoiceTransactionMatch.match_confidence, InvoiceTransactionMatch.matched_by)
        )
        by_confidence: dict[MatchConfidence, int] = {}
        by_origin: dict[MatchedBy, int] = {}
        for confidence, matched_by, count in result.all():
            by_confidence[confidence] = by_confidence.get(confidence, 0) + count
            by_origin[matched_by] = by_origin.get(matched_by, 0) + count

        medium = by_confidence.get(MatchConfidence.MEDIUM, 0)
        low = by_confidence.get(MatchConfidence.LOW, 0)
        return MatchStatistics(
            total=sum(by_origin.values()),
            auto=by_origin.get(MatchedBy.SYSTEM, 0),
            manual=by_origin.get(MatchedBy.USER, 0),
            high=by_confidence.get(MatchConfidence.HIGH, 0),
            medium=medium,
            low=low,
            needing_review=medium + low,
        )


@dataclass
class Repositories:
    """Repositories bound to a single session."""

    session: AsyncSession
    invoices: SqlInvoiceRepository
    transactions: SqlBankTransactionRepository
    matches: SqlMatchRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> Repositories:
        return cls(
            session=session,
            invoices=SqlInvoiceRepository(session),
            transactions=SqlBankTransactionRepository(session),
            matches=SqlMatchRepository(session),
        )


class UnitOfWork:
    """Runs a callable inside one session and one database transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_maker = session_maker or get_session_maker()

    async def with_transaction(self, fn: Callable[[Repositories], Awaitable[T]]) -> T:
        """Commit when ``fn`` returns, roll back when it raises."""
        async with self._session_maker() as session:
            try:
                result = await fn(Repositories.for_session(session))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return result
