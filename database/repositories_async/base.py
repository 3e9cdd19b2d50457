"""Base repository with async PostgreSQL connection pooling

Repositories inherit from BaseRepository and share:
- Connection pool (no connection per-instance)
- Transaction context managers
- Query helpers that translate driver errors into DatabaseError

Return Type Conventions
-----------------------
    get_Xs(...) -> List[T]
        Multiple entity retrieval with filters.
        Returns empty list [] if none match.

    get_X_batch(ids) -> Dict[str, T]
        Batch lookup by multiple IDs.
        Returns dict mapping found IDs to entities.
        Missing IDs are absent from dict (not errors).

Connection Patterns
-------------------
    self.pool.acquire()
        Use for read-only queries that don't need atomicity.

    self.transaction()
        Use for writes or multi-statement reads needing consistency.
"""

from contextlib import asynccontextmanager
from typing import Any, List

import asyncpg

from config import get_logger
from exceptions import DatabaseConnectionError, DatabaseError

logger = get_logger(__name__).bind(component="repository")

# Connection-level failures worth retrying, as opposed to query errors
_CONNECTION_ERRORS = (
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    ConnectionError,
    OSError,
)


class BaseRepository:
    """Base class for async PostgreSQL repositories

    Design Principles:
    - Pool is passed in, not created
    - Transactions are explicit (async with self.transaction())
    - Queries use $1, $2 placeholders (PostgreSQL parameterization)
    - Driver errors surface as DatabaseError, never as silent data loss
    """

    def __init__(self, pool: asyncpg.Pool):
        """Initialize repository with shared connection pool

        Args:
            pool: asyncpg connection pool (shared across all repositories)
        """
        self.pool = pool

    async def _fetch(self, query: str, *args: Any, operation: str = "fetch") -> List[asyncpg.Record]:
        """Execute query and fetch all rows"""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except _CONNECTION_ERRORS as e:
            raise self._connection_error(operation, e)
        except asyncpg.PostgresError as e:
            raise self._query_error(operation, e)

    async def _execute(self, query: str, *args: Any, operation: str = "execute") -> str:
        """Execute query without returning rows (INSERT, UPDATE, DELETE)"""
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except _CONNECTION_ERRORS as e:
            raise self._connection_error(operation, e)
        except asyncpg.PostgresError as e:
            raise self._query_error(operation, e)

    async def _executemany_atomic(
        self, query: str, args: List[tuple], operation: str = "executemany"
    ) -> None:
        """Execute query once per parameter tuple inside a single transaction

        Either every row is written or none is.

        Args:
            query: SQL query with $1, $2, etc. placeholders
            args: List of parameter tuples
        """
        try:
            async with self.transaction() as conn:
                await conn.executemany(query, args)
        except _CONNECTION_ERRORS as e:
            raise self._connection_error(operation, e)
        except asyncpg.PostgresError as e:
            raise self._query_error(operation, e)

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transactions

        Usage:
            async with self.transaction() as conn:
                await conn.execute("INSERT ...")
                await conn.execute("UPDATE ...")
                # Auto-commits on successful exit
                # Auto-rolls back on exception

        Yields:
            Connection with active transaction
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @staticmethod
    def _connection_error(operation: str, error: Exception) -> DatabaseConnectionError:
        logger.error("database connection failed", operation=operation, error=str(error))
        return DatabaseConnectionError(
            f"Database connection failed during {operation}",
            operation=operation,
            original_error=error,
        )

    @staticmethod
    def _query_error(operation: str, error: Exception) -> DatabaseError:
        logger.error("database query failed", operation=operation, error=str(error))
        return DatabaseError(
            f"Database query failed during {operation}",
            operation=operation,
            original_error=error,
        )

    @staticmethod
    def _parse_row_count(result: str) -> int:
        """Extract row count from PostgreSQL result like 'UPDATE 5' or 'DELETE 3'."""
        if not result:
            return 0
        return int(result.split()[-1])
