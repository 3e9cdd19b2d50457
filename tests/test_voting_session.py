"""
Tests for the voting session state machine

Covers resume math, progress and finish threshold, vote recording,
pointer movement, and batch loading (success, empty, failure).
"""

import asyncio
from datetime import datetime, timezone

import pytest

from database.models import Statement
from exceptions import BatchFetchError, PollwiseError, ValidationError
from voting.session import (
    BATCH_SIZE,
    SessionState,
    advance,
    create_session,
    current_statement,
    get_all_votes,
    get_progress,
    get_state,
    get_user_vote,
    get_vote_distribution,
    has_voted_on,
    has_voted_on_all,
    is_batch_complete,
    is_last_statement_in_batch,
    load_next_batch,
    next_statement,
    record_vote,
    seek_next,
)

POLL_ID = "3f2b8c1e-6a4d-4e2b-9c1a-0d5e7f8a9b10"
USER_ID = "user-1"
CREATED = datetime(2025, 6, 1, tzinfo=timezone.utc)


def statements(start: int, count: int):
    return [
        Statement(id=f"s{i}", poll_id=POLL_ID, created_at=CREATED)
        for i in range(start, start + count)
    ]


def new_session(loaded=None, votes=None, total=20):
    return create_session(
        statements=loaded if loaded is not None else statements(1, 10),
        votes=votes or {},
        poll_id=POLL_ID,
        user_id=USER_ID,
        total_statements_in_poll=total,
    )


class StubFetcher:
    def __init__(self, batches=None, error=None):
        self.batches = batches or {}
        self.error = error
        self.calls = []

    async def fetch_batch(self, poll_id, user_id, batch_number):
        self.calls.append((poll_id, user_id, batch_number))
        if self.error:
            raise self.error
        return self.batches.get(batch_number, [])


class TestResume:
    @pytest.mark.parametrize(
        "existing,batch,position",
        [(0, 1, 0), (3, 1, 3), (9, 1, 9), (10, 2, 0), (14, 2, 4), (25, 3, 5)],
    )
    def test_batch_and_position_from_existing_votes(self, existing, batch, position):
        votes = {f"old{i}": 1 for i in range(existing)}
        session = new_session(votes=votes, total=40)

        assert session.current_batch == batch
        assert session.position_in_batch == position

    def test_twenty_statement_poll_after_first_batch(self):
        votes = {f"s{i}": 1 for i in range(1, 11)}
        session = new_session(loaded=statements(11, 10), votes=votes, total=20)
        progress = get_progress(session)

        assert session.current_batch == 2
        assert session.position_in_batch == 0
        assert progress.threshold == 10
        assert progress.can_finish
        assert progress.statements_in_current_batch == 10

    def test_pointer_skips_already_voted_statements(self):
        session = new_session(votes={"s1": 1, "s2": -1})

        assert current_statement(session).id == "s3"
        assert next_statement(session).id == "s3"

    def test_invalid_existing_vote_rejected(self):
        with pytest.raises(ValidationError):
            new_session(votes={"s1": 2})


class TestThreshold:
    @pytest.mark.parametrize("total,threshold", [(0, 0), (4, 4), (10, 10), (37, 10)])
    def test_threshold_is_min_of_batch_and_poll_size(self, total, threshold):
        assert get_progress(new_session(total=total)).threshold == threshold

    def test_can_finish_exactly_at_threshold(self):
        session = new_session(total=20)

        for i in range(1, 10):
            session = record_vote(session, f"s{i}", 1)
            assert not get_progress(session).can_finish

        session = record_vote(session, "s10", 0)
        assert get_progress(session).can_finish

    def test_small_poll_threshold(self):
        session = new_session(loaded=statements(1, 4), total=4)
        for i in range(1, 4):
            session = record_vote(session, f"s{i}", -1)
        assert not get_progress(session).can_finish

        session = record_vote(session, "s4", -1)
        assert get_progress(session).can_finish
        assert has_voted_on_all(session)

    def test_last_partial_batch_size(self):
        votes = {f"old{i}": 1 for i in range(20)}
        session = new_session(loaded=statements(21, 5), votes=votes, total=25)

        assert get_progress(session).statements_in_current_batch == 5


class TestVoting:
    def test_record_vote_returns_new_session(self):
        session = new_session()
        voted = record_vote(session, "s1", 1)

        assert not has_voted_on(session, "s1")
        assert has_voted_on(voted, "s1")
        assert get_user_vote(voted, "s1") == 1
        assert get_user_vote(voted, "s2") is None

    def test_vote_overwrite(self):
        session = record_vote(record_vote(new_session(), "s1", 1), "s1", -1)

        assert get_user_vote(session, "s1") == -1
        assert session.total_voted == 1

    @pytest.mark.parametrize("value", [2, -2, 5])
    def test_invalid_value_rejected(self, value):
        with pytest.raises(ValidationError):
            record_vote(new_session(), "s1", value)

    def test_invalid_value_error_names_the_field(self):
        session = new_session()

        with pytest.raises(PollwiseError) as exc_info:
            record_vote(session, "s1", 2)

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.field == "value"
        assert exc_info.value.value == 2
        assert not exc_info.value.is_retryable
        assert not has_voted_on(session, "s1")

    def test_pass_vote_counts_as_voted(self):
        session = record_vote(new_session(), "s1", 0)

        assert has_voted_on(session, "s1")
        assert next_statement(session).id == "s2"

    def test_vote_distribution(self):
        session = new_session()
        for sid, value in [("s1", 1), ("s2", 1), ("s3", -1), ("s4", 0)]:
            session = record_vote(session, sid, value)

        distribution = get_vote_distribution(session)
        assert (distribution.agree_count, distribution.disagree_count, distribution.unsure_count) == (2, 1, 1)

    def test_get_all_votes_is_a_copy(self):
        session = record_vote(new_session(), "s1", 1)
        votes = get_all_votes(session)
        votes["s2"] = -1

        assert not has_voted_on(session, "s2")


class TestPointer:
    def test_current_is_stable_until_advance(self):
        session = new_session()

        assert current_statement(session).id == "s1"
        assert current_statement(session).id == "s1"

    def test_vote_then_advance(self):
        session = record_vote(new_session(), "s1", 1)
        assert current_statement(session) is None

        session = advance(session)
        assert current_statement(session).id == "s2"
        assert session.position_in_batch == 1

    def test_seek_next_skips_voted(self):
        session = record_vote(record_vote(new_session(), "s1", 1), "s2", 1)
        session = seek_next(session)

        assert current_statement(session).id == "s3"

    def test_last_statement_in_batch(self):
        session = new_session(loaded=statements(1, 3), total=20)
        assert not is_last_statement_in_batch(session)

        session = advance(record_vote(session, "s1", 1))
        session = advance(record_vote(session, "s2", 1))
        assert is_last_statement_in_batch(session)

        session = record_vote(session, "s3", 1)
        assert not is_last_statement_in_batch(session)
        assert is_batch_complete(session)
        assert next_statement(session) is None


class TestState:
    def test_lifecycle(self):
        session = new_session(loaded=statements(1, 2), total=3)
        assert get_state(session) == SessionState.FRESH

        session = record_vote(session, "s1", 1)
        assert get_state(session) == SessionState.IN_BATCH

        session = record_vote(session, "s2", 1)
        assert get_state(session) == SessionState.BATCH_COMPLETE

        session = record_vote(session, "s3", 1)
        assert get_state(session) == SessionState.EXHAUSTED


class TestLoadNextBatch:
    def test_success_appends_and_resets_position(self):
        session = new_session()
        for i in range(1, 11):
            session = advance(record_vote(session, f"s{i}", 1))
        fetcher = StubFetcher(batches={2: statements(11, 10)})

        result = asyncio.run(load_next_batch(session, fetcher))

        assert result.loaded
        assert result.error is None
        assert result.session.current_batch == 2
        assert result.session.position_in_batch == 0
        assert len(result.session.statements) == 2 * BATCH_SIZE
        assert current_statement(result.session).id == "s11"
        assert fetcher.calls == [(POLL_ID, USER_ID, 2)]

    def test_empty_batch_leaves_session_unchanged(self):
        session = new_session()

        result = asyncio.run(load_next_batch(session, StubFetcher()))

        assert not result.loaded
        assert result.error is None
        assert result.session is session
        assert result.session.current_batch == 1

    def test_already_loaded_statements_are_not_duplicated(self):
        session = new_session()
        fetcher = StubFetcher(batches={2: statements(9, 4)})

        result = asyncio.run(load_next_batch(session, fetcher))

        assert result.loaded
        assert [s.id for s in result.session.statements[10:]] == ["s11", "s12"]

    def test_batch_of_only_known_statements_is_exhausted(self):
        session = new_session()

        result = asyncio.run(load_next_batch(session, StubFetcher(batches={2: statements(1, 3)})))

        assert not result.loaded
        assert result.session is session

    def test_fetch_failure_is_wrapped_not_raised(self):
        session = new_session()
        fetcher = StubFetcher(error=TimeoutError("upstream timed out"))

        result = asyncio.run(load_next_batch(session, fetcher))

        assert not result.loaded
        assert result.session is session
        assert isinstance(result.error, BatchFetchError)
        assert result.error.batch_number == 2
        assert result.error.is_retryable
        assert isinstance(result.error.original_error, TimeoutError)

    def test_pollwise_error_is_passed_through(self):
        error = BatchFetchError("store unavailable", poll_id=POLL_ID, batch_number=2)

        result = asyncio.run(load_next_batch(new_session(), StubFetcher(error=error)))

        assert result.error is error
