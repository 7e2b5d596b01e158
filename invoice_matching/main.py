"""Invoice Matching - FastAPI Application."""

import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from invoice_matching.config import settings
from invoice_matching.database import create_schema
from invoice_matching.deps import EventBusDep, UnitOfWorkDep
from invoice_matching.logger import configure_logging, get_logger
from invoice_matching.repositories import Repositories
from invoice_matching.routers import matches
from invoice_matching.services.events import EventBus, log_event

VERSION = "0.1.0"

# Initialize logging early
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the schema when asked to, and run the event consumer for the app's lifetime."""
    if settings.auto_create_schema:
        await create_schema()
        logger.info("Database schema ensured")

    event_bus = EventBus()
    event_bus.subscribe(log_event)
    await event_bus.start()
    app.state.event_bus = event_bus
    logger.info("Application started", version=VERSION, environment=settings.environment)

    yield

    await event_bus.stop()
    logger.info("Application stopped", dropped_events=event_bus.dropped)


app = FastAPI(
    title="Invoice Matching API",
    description="Reconciliation of invoices against bank transactions",
    version=VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next: Any) -> Response:
    """Bind request id and owner to the log context, then log the outcome."""
    request_id = request.headers.get("X-Request-ID", str(uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        owner_id=request.headers.get("X-User-Id"),
        method=request.method,
        path=request.url.path,
    )

    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception(
            "HTTP Request Failed",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            error=str(exc),
        )
        raise

    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        "HTTP Request",
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return unexpected failures as JSON; details only in debug."""
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc) if settings.debug else "An internal server error occurred. Please try again later.",
            "trace": traceback.format_exc() if settings.debug else None,
            "request_id": structlog.contextvars.get_contextvars().get("request_id"),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-User-Id", "X-Request-ID"],
)

app.include_router(matches.router)


@app.get("/health")
async def health_check(unit_of_work: UnitOfWorkDep, event_bus: EventBusDep) -> JSONResponse:
    """Report database reachability and event consumer state.

    Returns 503 when the database cannot be queried. Dropped events are
    reported but do not make the service unhealthy.
    """

    async def ping(repos: Repositories) -> None:
        await repos.session.execute(text("SELECT 1"))

    checks: dict[str, bool] = {}
    try:
        await unit_of_work.with_transaction(ping)
        checks["database"] = True
    except Exception as exc:
        logger.error("Health check: database unreachable", error=str(exc), error_type=type(exc).__name__)
        checks["database"] = False
    checks["event_consumer"] = event_bus is not None and event_bus.running

    healthy = checks["database"]
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": VERSION,
            "checks": checks,
            "dropped_events": event_bus.dropped if event_bus is not None else 0,
        },
    )
