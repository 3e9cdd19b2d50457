"""
Tests for the pollwise-weights CLI

Database.create() is patched to hand back an in-memory cache, so the
commands run end to end without PostgreSQL.
"""

import asyncio
import json
import logging
import sys

import click
import pytest
from click.testing import CliRunner

from database.models import MODE_CLUSTERING, WeightRecord
from database.weight_cache import InMemoryWeightCache
from exceptions import DatabaseConnectionError
from pipeline import weights_admin
from pipeline.click_types import POLL_ID

POLL = "3f2b8c1e-6a4d-4e2b-9c1a-0d5e7f8a9b10"


def record(statement_id: str, weight: float) -> WeightRecord:
    return WeightRecord(
        poll_id=POLL,
        statement_id=statement_id,
        predictiveness=weight,
        consensus_potential=1.0,
        recency_boost=1.0,
        pass_rate_penalty=1.0,
        combined_weight=weight,
        mode=MODE_CLUSTERING,
    )


class FakeDatabase:
    def __init__(self, weights):
        self.weights = weights
        self.schema_initialized = False
        self.closed = False

    async def init_schema(self):
        self.schema_initialized = True

    async def close(self):
        self.closed = True


@pytest.fixture
def cache():
    return InMemoryWeightCache()


@pytest.fixture
def fake_db(monkeypatch, cache):
    created = []

    async def create(*args, **kwargs):
        db = FakeDatabase(cache)
        created.append(db)
        return db

    monkeypatch.setattr(weights_admin.Database, "create", create)
    return created


class TestPollIdType:
    def test_accepts_uuid(self):
        assert POLL_ID.convert(POLL, None, None) == POLL

    def test_normalises_case(self):
        assert POLL_ID.convert(POLL.upper(), None, None) == POLL

    @pytest.mark.parametrize(
        "value",
        ["42", "not-a-uuid", POLL.replace("-", ""), "{" + POLL + "}", ""],
    )
    def test_rejects_non_uuid(self, value):
        with pytest.raises(click.BadParameter):
            POLL_ID.convert(value, None, None)


class TestCommands:
    def test_no_command_prints_help(self):
        result = CliRunner().invoke(weights_admin.cli, [])

        assert result.exit_code == 0
        assert "init-schema" in result.output

    def test_init_schema(self, fake_db):
        result = CliRunner().invoke(weights_admin.cli, ["init-schema"])

        assert result.exit_code == 0
        assert fake_db[0].schema_initialized
        assert fake_db[0].closed

    def test_show_dumps_sorted_json(self, fake_db, cache):
        asyncio.run(cache.upsert_statement_weights([record("low", 0.2), record("high", 0.8)]))

        result = CliRunner().invoke(weights_admin.cli, ["show", POLL])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [r["statement_id"] for r in data] == ["high", "low"]
        assert fake_db[0].closed

    def test_show_empty_poll(self, fake_db):
        result = CliRunner().invoke(weights_admin.cli, ["show", POLL])

        assert result.exit_code == 0
        assert "No cached weights" in result.output

    def test_show_rejects_bad_poll_id(self, fake_db):
        result = CliRunner().invoke(weights_admin.cli, ["show", "poll-7"])

        assert result.exit_code == 2
        assert fake_db == []

    def test_invalidate(self, fake_db, cache):
        asyncio.run(cache.upsert_statement_weights([record("a", 0.2), record("b", 0.8)]))

        result = CliRunner().invoke(
            weights_admin.cli, ["invalidate", POLL, "--reason", "statement_deleted"]
        )

        assert result.exit_code == 0
        assert "Invalidated 2" in result.output
        assert len(cache) == 0

    def test_invalidate_rejects_unknown_reason(self, fake_db):
        result = CliRunner().invoke(weights_admin.cli, ["invalidate", POLL, "--reason", "whim"])

        assert result.exit_code == 2

    def test_connection_failure_exits_nonzero(self, monkeypatch):
        async def create(*args, **kwargs):
            raise DatabaseConnectionError("Failed to connect to PostgreSQL", operation="create_pool")

        monkeypatch.setattr(weights_admin.Database, "create", create)

        result = CliRunner().invoke(weights_admin.cli, ["show", POLL])

        assert result.exit_code == 1

    def test_invalidate_uses_shared_helper(self, fake_db, monkeypatch):
        calls = []

        async def invalidate(cache, poll_id, reason):
            calls.append((poll_id, reason))
            return 0

        monkeypatch.setattr(weights_admin, "invalidate_poll_weights", invalidate)

        result = CliRunner().invoke(weights_admin.cli, ["invalidate", POLL])

        assert result.exit_code == 0
        assert calls == [(POLL, "clustering_recomputed")]

    def test_verbose_prints_configuration(self, fake_db):
        result = CliRunner().invoke(weights_admin.cli, ["--verbose", "init-schema"])

        assert result.exit_code == 0
        assert "clustering_min_users" in result.output
        assert "password" not in result.output.lower()


def test_main_leaves_logging_configuration_alone(monkeypatch):
    handlers = list(logging.getLogger().handlers)
    monkeypatch.setattr(sys, "argv", ["pollwise-weights", "--help"])

    with pytest.raises(SystemExit) as exc_info:
        weights_admin.main()

    assert exc_info.value.code == 0
    assert logging.getLogger().handlers == handlers
