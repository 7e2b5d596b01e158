"""Test fixtures and configuration."""

import logging
import sys
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from invoice_matching.database import create_schema
from invoice_matching.deps import get_event_bus, get_unit_of_work
from invoice_matching.main import app
from invoice_matching.repositories import UnitOfWork
from invoice_matching.services.batch import BatchCoordinator
from invoice_matching.services.candidates import CandidateGenerator
from invoice_matching.services.events import EventBus
from invoice_matching.services.lifecycle import MatchLifecycleManager
from invoice_matching.services.review_queue import ReviewQueue
from invoice_matching.services.scoring import DEFAULT_CONFIG


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


# --- Database ---
@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine, one database per test.

    NullPool gives every session its own connection, so sessions opened by the
    unit of work see only committed data, as they would against PostgreSQL.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matching.db'}",
        echo=False,
        poolclass=NullPool,
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    """Session used to seed data. Commit after creating rows."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def fetch(session_maker):
    """Load a row through a fresh session, bypassing the seeding session's identity map."""

    async def _fetch(model, pk):
        async with session_maker() as session:
            return await session.get(model, pk)

    return _fetch


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_owner_id():
    return uuid4()


# --- Engine services ---
@pytest.fixture
def uow(session_maker):
    return UnitOfWork(session_maker)


@pytest_asyncio.fixture
async def event_bus():
    bus = EventBus(maxsize=100)
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
def recorded_events(event_bus):
    """Events delivered by the bus, in order. Call ``event_bus.drain()`` first."""
    events = []

    async def record(event):
        events.append(event)

    event_bus.subscribe(record)
    return events


@pytest.fixture
def manager(uow, event_bus):
    return MatchLifecycleManager(uow, event_bus, scoring_config=DEFAULT_CONFIG)


@pytest.fixture
def candidates(uow):
    return CandidateGenerator(uow, scoring_config=DEFAULT_CONFIG)


@pytest.fixture
def review_queue(uow, candidates):
    return ReviewQueue(uow, candidates)


@pytest.fixture
def batch(manager):
    return BatchCoordinator(manager)


# --- HTTP ---
@pytest_asyncio.fixture
async def client(uow, event_bus, owner_id):
    app.dependency_overrides[get_unit_of_work] = lambda: uow
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": str(owner_id)},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
