"""Statement weighting service

Read-through cache around the weight calculator.

Two operating modes, chosen per poll:
1. Clustering mode (enough participants and statements): predictiveness,
   consensus potential, recency, pass rate
2. Cold start mode (otherwise): vote count, recency, pass rate

Caching strategy:
- Weights live in the weight cache keyed by (poll_id, statement_id)
- Misses are computed, upserted, and merged into the result
- Invalidation is event driven (clustering recomputed, statement approved
  or deleted); there is no time-based expiry
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence

from pydantic.dataclasses import dataclass

from config import config, get_logger
from database.models import (
    Statement,
    StatementAnalysis,
    VoteTally,
    WeightRecord,
)
from database.weight_cache import WeightCache
from weighting.calculator import clustering_weight, cold_start_weight

logger = get_logger(__name__).bind(component="statement_weighting")

# Invalidation triggers
REASON_CLUSTERING_RECOMPUTED = "clustering_recomputed"
REASON_STATEMENT_APPROVED = "statement_approved"
REASON_STATEMENT_DELETED = "statement_deleted"
INVALIDATION_REASONS = (
    REASON_CLUSTERING_RECOMPUTED,
    REASON_STATEMENT_APPROVED,
    REASON_STATEMENT_DELETED,
)


@dataclass(frozen=True)
class PollParticipation:
    """Counts that decide clustering eligibility"""

    user_count: int
    statement_count: int


@dataclass(frozen=True)
class ClusteringEligibility:
    eligible: bool
    user_count: int
    statement_count: int
    reason: Optional[str] = None


@dataclass(frozen=True)
class StatementWeight:
    statement_id: str
    weight: float
    record: WeightRecord


class PollDataSource(Protocol):
    """Upstream data the service reads to compute weights

    Implemented outside this package (statements, votes and clustering
    tables belong to other subsystems).
    """

    async def get_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> List[Statement]: ...

    async def get_vote_tallies(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, VoteTally]: ...

    async def get_classifications(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, StatementAnalysis]: ...

    async def get_participation(self, poll_id: str) -> PollParticipation: ...


def is_eligible_for_clustering(
    user_count: int,
    statement_count: int,
    min_users: int = config.CLUSTERING_MIN_USERS,
    min_statements: int = config.CLUSTERING_MIN_STATEMENTS,
) -> ClusteringEligibility:
    """Decide whether a poll has enough data for clustering mode

    Args:
        user_count: Distinct users who voted in the poll
        statement_count: Approved statements in the poll
        min_users: Minimum voters required
        min_statements: Minimum statements required

    Returns:
        ClusteringEligibility with a human-readable reason when not eligible
    """
    if statement_count < min_statements:
        return ClusteringEligibility(
            eligible=False,
            user_count=user_count,
            statement_count=statement_count,
            reason=f"Insufficient statements: {statement_count}/{min_statements}",
        )

    if user_count < min_users:
        return ClusteringEligibility(
            eligible=False,
            user_count=user_count,
            statement_count=statement_count,
            reason=f"Insufficient users: {user_count}/{min_users}",
        )

    return ClusteringEligibility(
        eligible=True,
        user_count=user_count,
        statement_count=statement_count,
    )


async def invalidate_poll_weights(
    cache: WeightCache, poll_id: str, reason: str = REASON_CLUSTERING_RECOMPUTED
) -> int:
    """Drop every cached weight for a poll after a named invalidation event

    Raises:
        ValueError: If reason is not one of INVALIDATION_REASONS
    """
    if reason not in INVALIDATION_REASONS:
        raise ValueError(
            f"Unknown invalidation reason: {reason}. Must be one of {INVALIDATION_REASONS}"
        )

    deleted = await cache.invalidate_statement_weights(poll_id)
    logger.info("weights invalidated", poll_id=poll_id, reason=reason, deleted=deleted)
    return deleted


class StatementWeightingService:
    """Get-or-compute weights for a poll's statements

    Usage:
        service = StatementWeightingService(db.weights, source)
        weights = await service.get_statement_weights(poll_id, unvoted_ids)
    """

    def __init__(
        self,
        cache: WeightCache,
        source: PollDataSource,
        min_users: int = config.CLUSTERING_MIN_USERS,
        min_statements: int = config.CLUSTERING_MIN_STATEMENTS,
    ):
        self.cache = cache
        self.source = source
        self.min_users = min_users
        self.min_statements = min_statements

    async def get_statement_weights(
        self,
        poll_id: str,
        statement_ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> List[StatementWeight]:
        """Get weights for statements, computing and caching the misses

        Args:
            poll_id: Poll ID
            statement_ids: Statement IDs to weight (typically the user's unvoted ones)
            now: Reference time for recency (defaults to current UTC time)

        Returns:
            StatementWeight list in request order; IDs unknown to the source are omitted
        """
        if not statement_ids:
            return []

        cached = await self.cache.get_cached_weights_for_statements(poll_id, statement_ids)
        missing = [sid for sid in statement_ids if sid not in cached]

        if missing:
            fresh = await self.calculate_weights(poll_id, missing, now=now)
            if fresh:
                await self.cache.upsert_statement_weights(fresh)
            cached = {**cached, **{r.statement_id: r for r in fresh}}

        logger.info(
            "resolved statement weights",
            poll_id=poll_id,
            requested=len(statement_ids),
            cache_hits=len(statement_ids) - len(missing),
            computed=len(missing),
        )

        return [
            StatementWeight(statement_id=sid, weight=cached[sid].combined_weight, record=cached[sid])
            for sid in statement_ids
            if sid in cached
        ]

    async def calculate_weights(
        self,
        poll_id: str,
        statement_ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> List[WeightRecord]:
        """Compute weights without touching the cache

        Args:
            poll_id: Poll ID
            statement_ids: Statement IDs to compute
            now: Reference time for recency

        Returns:
            WeightRecord for every statement the source knows
        """
        if now is None:
            now = datetime.now(timezone.utc)

        participation = await self.source.get_participation(poll_id)
        eligibility = is_eligible_for_clustering(
            participation.user_count,
            participation.statement_count,
            self.min_users,
            self.min_statements,
        )

        if eligibility.eligible:
            statements, tallies, analyses = await asyncio.gather(
                self.source.get_statements(poll_id, statement_ids),
                self.source.get_vote_tallies(poll_id, statement_ids),
                self.source.get_classifications(poll_id, statement_ids),
            )
        else:
            logger.debug("using cold start weights", poll_id=poll_id, reason=eligibility.reason)
            statements, tallies = await asyncio.gather(
                self.source.get_statements(poll_id, statement_ids),
                self.source.get_vote_tallies(poll_id, statement_ids),
            )
            analyses = {}

        avg_votes = self._average_votes(statement_ids, tallies)
        records = []

        for stmt in statements:
            tally = tallies.get(stmt.id) or VoteTally()
            analysis = analyses.get(stmt.id)

            if analysis is not None:
                components = clustering_weight(
                    analysis.group_agreements,
                    analysis.classification,
                    stmt.created_at,
                    tally,
                    now=now,
                )
            else:
                if eligibility.eligible:
                    # Clustering ran but has not classified this statement yet
                    logger.warning(
                        "no classification for statement, using cold start weight",
                        poll_id=poll_id,
                        statement_id=stmt.id,
                    )
                components = cold_start_weight(
                    stmt.created_at, tally, tally.total, avg_votes, now=now
                )

            records.append(
                WeightRecord.from_components(
                    poll_id, stmt.id, components, tally, calculated_at=now
                )
            )

        return records

    async def invalidate_weights(
        self, poll_id: str, reason: str = REASON_CLUSTERING_RECOMPUTED
    ) -> int:
        """Drop every cached weight for a poll

        Call this when clustering is recomputed or a statement is approved or
        deleted.

        Args:
            poll_id: Poll ID to invalidate
            reason: One of INVALIDATION_REASONS

        Returns:
            Number of cached records removed
        """
        return await invalidate_poll_weights(self.cache, poll_id, reason)

    @staticmethod
    def _average_votes(
        statement_ids: Sequence[str], tallies: Dict[str, VoteTally]
    ) -> float:
        if not statement_ids:
            return 0.0
        total = sum(tallies[sid].total for sid in statement_ids if sid in tallies)
        return total / len(statement_ids)
