"""PostgreSQL Database Layer with Repository Pattern

Owns the asyncpg pool and hands it to the repositories.
"""

from pathlib import Path
from typing import Optional

import asyncpg

from config import get_logger, config
from database.repositories_async import StatementWeightRepository
from exceptions import DatabaseConnectionError

logger = get_logger(__name__).bind(component="database_postgres")


class Database:
    """Async PostgreSQL database with repository pattern

    Usage:
        db = await Database.create()
        weights = await db.weights.get_cached_weights_for_statements(poll_id, ids)
        await db.close()
    """

    pool: asyncpg.Pool

    weights: StatementWeightRepository

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with connection pool and repositories

        Use Database.create() classmethod instead of direct instantiation.
        """
        self.pool = pool
        self.weights = StatementWeightRepository(pool)

        logger.info("database initialized with repositories")

    @classmethod
    async def create(
        cls,
        dsn: Optional[str] = None,
        min_size: int = config.POSTGRES_POOL_MIN_SIZE,
        max_size: int = config.POSTGRES_POOL_MAX_SIZE
    ) -> "Database":
        """Create database with connection pool

        Args:
            dsn: PostgreSQL connection string (defaults to config.get_postgres_dsn())
            min_size: Minimum pool size (default: config.POSTGRES_POOL_MIN_SIZE)
            max_size: Maximum pool size (default: config.POSTGRES_POOL_MAX_SIZE)

        Returns:
            Initialized Database instance
        """
        if dsn is None:
            dsn = config.get_postgres_dsn()

        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=60,
            )
            logger.info("connection pool created", min_size=min_size, max_size=max_size)
            return cls(pool)
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            # Connection-specific errors only - let programming errors fail loudly
            logger.error("failed to create connection pool", error=str(e))
            raise DatabaseConnectionError(
                f"Failed to connect to PostgreSQL: {e}",
                operation="create_pool",
                original_error=e,
            )

    async def close(self):
        """Close connection pool"""
        await self.pool.close()
        logger.info("connection pool closed")

    async def init_schema(self):
        """Initialize the weight cache schema

        Safe to call multiple times (uses IF NOT EXISTS).
        """
        schema_path = Path(__file__).parent / "schema_postgres.sql"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        schema_sql = schema_path.read_text()

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)

        logger.info("schema initialized", path=str(schema_path))
