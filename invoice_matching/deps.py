"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from invoice_matching.deps import CurrentUserId, LifecycleManager

    async def my_endpoint(manager: LifecycleManager, user_id: CurrentUserId):
        ...

Tests override ``get_unit_of_work`` and ``get_event_bus``; every engine
service is built from those two.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request

from invoice_matching.auth import get_current_user_id
from invoice_matching.database import get_session_maker
from invoice_matching.repositories import UnitOfWork
from invoice_matching.services.batch import BatchCoordinator
from invoice_matching.services.candidates import CandidateGenerator
from invoice_matching.services.events import EventBus
from invoice_matching.services.lifecycle import MatchLifecycleManager
from invoice_matching.services.review_queue import ReviewQueue


def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork(get_session_maker())


def get_event_bus(request: Request) -> EventBus | None:
    return getattr(request.app.state, "event_bus", None)


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_unit_of_work)]
EventBusDep = Annotated[EventBus | None, Depends(get_event_bus)]


def get_lifecycle_manager(unit_of_work: UnitOfWorkDep, event_bus: EventBusDep) -> MatchLifecycleManager:
    return MatchLifecycleManager(unit_of_work, event_bus)


def get_candidate_generator(unit_of_work: UnitOfWorkDep) -> CandidateGenerator:
    return CandidateGenerator(unit_of_work)


LifecycleManager = Annotated[MatchLifecycleManager, Depends(get_lifecycle_manager)]
Candidates = Annotated[CandidateGenerator, Depends(get_candidate_generator)]


def get_review_queue(unit_of_work: UnitOfWorkDep, candidates: Candidates) -> ReviewQueue:
    return ReviewQueue(unit_of_work, candidates)


def get_batch_coordinator(manager: LifecycleManager) -> BatchCoordinator:
    return BatchCoordinator(manager)


Review = Annotated[ReviewQueue, Depends(get_review_queue)]
Batch = Annotated[BatchCoordinator, Depends(get_batch_coordinator)]

__all__ = [
    "Batch",
    "Candidates",
    "CurrentUserId",
    "EventBusDep",
    "LifecycleManager",
    "Review",
    "UnitOfWorkDep",
]
