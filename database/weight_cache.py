"""Weight cache interface and in-memory implementation

WeightCache is the contract the weighting service depends on. Two
implementations satisfy it:
- StatementWeightRepository (PostgreSQL, durable)
- InMemoryWeightCache (dict keyed by (poll_id, statement_id), process-local)

Semantics shared by both:
- Lookups return only stored records; a miss is absence, not an error
- Upserts replace whole records, last writer wins
- Invalidation is scoped to one poll and is a no-op when nothing is cached
"""

import threading
from typing import Dict, List, Protocol, Sequence, Tuple

from config import get_logger
from database.models import WeightRecord

logger = get_logger(__name__).bind(component="weight_cache")


class WeightCache(Protocol):
    async def get_cached_weights_for_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, WeightRecord]: ...

    async def get_cached_statement_weights(self, poll_id: str) -> List[WeightRecord]: ...

    async def upsert_statement_weights(self, records: Sequence[WeightRecord]) -> None: ...

    async def invalidate_statement_weights(self, poll_id: str) -> int: ...


class InMemoryWeightCache:
    """Process-local weight cache

    A batch upsert is applied under one lock, so readers never observe a
    half-applied batch. Records are immutable, so stored values are shared
    without copying.
    """

    def __init__(self):
        self._records: Dict[Tuple[str, str], WeightRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get_cached_weights_for_statements(
        self, poll_id: str, statement_ids: Sequence[str]
    ) -> Dict[str, WeightRecord]:
        if not statement_ids:
            return {}

        with self._lock:
            return {
                sid: self._records[(poll_id, sid)]
                for sid in statement_ids
                if (poll_id, sid) in self._records
            }

    async def get_cached_statement_weights(self, poll_id: str) -> List[WeightRecord]:
        with self._lock:
            records = [r for (pid, _), r in self._records.items() if pid == poll_id]
        return sorted(records, key=lambda r: (-r.combined_weight, r.statement_id))

    async def upsert_statement_weights(self, records: Sequence[WeightRecord]) -> None:
        if not records:
            return

        with self._lock:
            for record in records:
                self._records[record.key] = record

        logger.debug("upserted statement weights", count=len(records))

    async def invalidate_statement_weights(self, poll_id: str) -> int:
        with self._lock:
            stale = [key for key in self._records if key[0] == poll_id]
            for key in stale:
                del self._records[key]

        logger.info("invalidated statement weights", poll_id=poll_id, deleted=len(stale))
        return len(stale)
