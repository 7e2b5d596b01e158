"""Read-only queries over existing matches and auto-match candidates."""

from __future__ import annotations

from uuid import UUID

from invoice_matching.errors import NotFoundError, ValidationError, returns_result
from invoice_matching.logger import get_logger
from invoice_matching.repositories import MatchQuery, MatchStatistics, Repositories, UnitOfWork
from invoice_matching.services.candidates import CandidateGenerator, MatchSuggestion
from invoice_matching.services.match_records import MatchRecord, parse_id
from invoice_matching.services.scoring import HIGH_CONFIDENCE_SCORE

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


def _validate_page(limit: int, offset: int) -> None:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", "INVALID_PAGINATION")
    if offset < 0:
        raise ValidationError("offset must not be negative", "INVALID_PAGINATION")


class ReviewQueue:
    def __init__(self, unit_of_work: UnitOfWork, candidate_generator: CandidateGenerator) -> None:
        self.unit_of_work = unit_of_work
        self.candidate_generator = candidate_generator

    @returns_result
    async def find_needing_review(
        self,
        owner_id: UUID | str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[MatchRecord]:
        """MEDIUM and LOW confidence matches, best score first."""
        owner = parse_id(owner_id, "owner_id")
        _validate_page(limit, offset)

        async def query(repos: Repositories) -> list[MatchRecord]:
            return await repos.matches.find_needing_review(owner, limit=limit, offset=offset)

        return await self.unit_of_work.with_transaction(query)

    @returns_result
    async def get_auto_matchable(self, owner_id: UUID | str) -> list[MatchSuggestion]:
        """Best HIGH-confidence suggestion for each unmatched invoice."""
        suggestions = await self.candidate_generator.suggest_for_all_unmatched(
            owner_id,
            min_score=HIGH_CONFIDENCE_SCORE,
            max_suggestions=1,
        )
        best = [found[0] for found in suggestions.unwrap().values() if found]
        best.sort(key=lambda s: s.score, reverse=True)
        logger.info("Auto-matchable suggestions", owner_id=str(owner_id), count=len(best))
        return best

    @returns_result
    async def get_match(self, owner_id: UUID | str, match_id: UUID | str) -> MatchRecord:
        owner = parse_id(owner_id, "owner_id")
        match_uuid = parse_id(match_id, "match_id")

        async def query(repos: Repositories) -> MatchRecord:
            record = await repos.matches.find_by_id(owner, match_uuid)
            if record is None:
                raise NotFoundError("Match", match_uuid, "MATCH_NOT_FOUND")
            return record

        return await self.unit_of_work.with_transaction(query)

    @returns_result
    async def list_matches(
        self,
        owner_id: UUID | str,
        query: MatchQuery | None = None,
    ) -> tuple[list[MatchRecord], int]:
        """Filtered page of matches plus the total matching the filters."""
        owner = parse_id(owner_id, "owner_id")
        query = query or MatchQuery()
        _validate_page(query.limit, query.offset)
        if (
            query.min_score is not None
            and query.max_score is not None
            and query.min_score > query.max_score
        ):
            raise ValidationError("min_score must not exceed max_score", "INVALID_SCORE_RANGE")

        async def run(repos: Repositories) -> tuple[list[MatchRecord], int]:
            items = await repos.matches.find_all(owner, query)
            total = await repos.matches.count(owner, query)
            return items, total

        return await self.unit_of_work.with_transaction(run)

    @returns_result
    async def get_statistics(self, owner_id: UUID | str) -> MatchStatistics:
        owner = parse_id(owner_id, "owner_id")

        async def query(repos: Repositories) -> MatchStatistics:
            return await repos.matches.get_statistics(owner)

        return await self.unit_of_work.with_transaction(query)
