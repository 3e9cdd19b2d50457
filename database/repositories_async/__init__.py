"""Async PostgreSQL repositories using asyncpg connection pooling"""

from database.repositories_async.base import BaseRepository
from database.repositories_async.statement_weights import StatementWeightRepository

__all__ = [
    "BaseRepository",
    "StatementWeightRepository",
]
