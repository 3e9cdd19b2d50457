"""Async StatementWeightRepository - PostgreSQL weight cache

Stores calculator output per (poll_id, statement_id) so weights are not
recomputed on every page view.

- Lookup returns only the rows that exist (misses are absent, not errors)
- Upsert replaces whole rows via ON CONFLICT, one transaction per call
- Invalidation deletes every row of one poll
"""

from typing import Dict, List, Sequence

import asyncpg

from config import get_logger
from database.models import WeightRecord
from database.repositories_async.base import BaseRepository

logger = get_logger(__name__).bind(component="weight_cache")

_SELECT_COLUMNS = """
    poll_id::text AS poll_id,
    statement_id::text AS statement_id,
    predictiveness,
    consensus_potential,
    recency_boost,
    pass_rate_penalty,
    vote_count_boost,
    combined_weight,
    mode,
    agree_count,
    disagree_count,
    pass_count,
    calculated_at
"""

_UPSERT_SQL = """
    INSERT INTO statement_weights (
        poll_id, statement_id,
        predictiveness, consensus_potential, recency_boost, pass_rate_penalty,
        vote_count_boost, combined_weight, mode,
        agree_count, disagree_count, pass_count, calculated_at
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, NOW())
    ON CONFLICT (poll_id, statement_id) DO UPDATE SET
        predictiveness = EXCLUDED.predictiveness,
        consensus_potential = EXCLUDED.consensus_potential,
        recency_boost = EXCLUDED.recency_boost,
        pass_rate_penalty = EXCLUDED.pass_rate_penalty,
        vote_count_boost = EXCLUDED.vote_count_boost,
        combined_weight = EXCLUDED.combined_weight,
        mode = EXCLUDED.mode,
        agree_count = EXCLUDED.agree_count,
        disagree_count = EXCLUDED.disagree_count,
        pass_count = EXCLUDED.pass_count,
        calculated_at = NOW()
"""


def _row_to_record(row: asyncpg.Record) -> WeightRecord:
    return WeightRecord(**dict(row))


class StatementWeightRepository(BaseRepository):
    """Repository for the statement_weights cache table."""

    async def get_cached_weights_for_statements(
        self,
        poll_id: str,
        statement_ids: Sequence[str],
    ) -> Dict[str, WeightRecord]:
        """Get cached weights for specific statements.

        Args:
            poll_id: Poll ID
            statement_ids: Statement IDs to look up

        Returns:
            Dict mapping statement_id -> WeightRecord for cached statements only
        """
        if not statement_ids:
            return {}

        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM statement_weights
            WHERE poll_id = $1::uuid AND statement_id = ANY($2::uuid[])
            """,
            poll_id,
            list(statement_ids),
            operation="get_cached_weights",
        )

        weights = {}
        for row in rows:
            record = _row_to_record(row)
            weights[record.statement_id] = record

        logger.debug(
            "weight cache lookup",
            poll_id=poll_id,
            requested=len(statement_ids),
            hits=len(weights),
        )
        return weights

    async def get_cached_statement_weights(self, poll_id: str) -> List[WeightRecord]:
        """Get every cached weight for a poll, highest weight first.

        Args:
            poll_id: Poll ID

        Returns:
            List of WeightRecord (empty if nothing cached)
        """
        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM statement_weights
            WHERE poll_id = $1::uuid
            ORDER BY combined_weight DESC, statement_id
            """,
            poll_id,
            operation="get_poll_weights",
        )
        return [_row_to_record(row) for row in rows]

    async def upsert_statement_weights(self, records: Sequence[WeightRecord]) -> None:
        """Insert or replace weights.

        Conflict target is (poll_id, statement_id); every column is
        overwritten from the new record, never merged. All records of one
        call are written in a single transaction.

        Args:
            records: Weight records to store
        """
        if not records:
            return

        await self._executemany_atomic(
            _UPSERT_SQL,
            [
                (
                    r.poll_id,
                    r.statement_id,
                    r.predictiveness,
                    r.consensus_potential,
                    r.recency_boost,
                    r.pass_rate_penalty,
                    r.vote_count_boost,
                    r.combined_weight,
                    r.mode,
                    r.agree_count,
                    r.disagree_count,
                    r.pass_count,
                )
                for r in records
            ],
            operation="upsert_weights",
        )

        logger.info(
            "upserted statement weights",
            count=len(records),
            polls=len({r.poll_id for r in records}),
        )

    async def invalidate_statement_weights(self, poll_id: str) -> int:
        """Delete all cached weights for a poll.

        No-op when the poll has nothing cached.

        Args:
            poll_id: Poll ID to invalidate

        Returns:
            Number of rows deleted
        """
        result = await self._execute(
            "DELETE FROM statement_weights WHERE poll_id = $1::uuid",
            poll_id,
            operation="invalidate_weights",
        )
        deleted = self._parse_row_count(result)

        logger.info("invalidated statement weights", poll_id=poll_id, deleted=deleted)
        return deleted
