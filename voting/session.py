"""Voting session state machine

Tracks one user's walk through one poll's statements in batches of 10.

A VotingSession is an immutable value. Every transition (record_vote,
advance, seek_next, load_next_batch) returns a new session and leaves the
old one untouched, so callers can keep the previous state for rollback or
comparison without copying.

States are implied by the counters rather than stored:
- fresh: nothing voted yet
- in_batch: some statements in the loaded batch still unvoted
- batch_complete: every loaded statement voted, more may exist upstream
- exhausted: voted on every statement in the poll (terminal)

Only load_next_batch suspends (it calls the batch fetcher). A failed or
empty fetch returns the original session unchanged.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Protocol, Sequence, Tuple

from config import get_logger
from database.models import (
    VALID_VOTE_VALUES,
    VOTE_AGREE,
    VOTE_DISAGREE,
    VOTE_PASS,
    Statement,
)
from exceptions import BatchFetchError, PollwiseError, ValidationError

logger = get_logger(__name__).bind(component="voting_session")

BATCH_SIZE = 10


class SessionState(str, Enum):
    FRESH = "fresh"
    IN_BATCH = "in_batch"
    BATCH_COMPLETE = "batch_complete"
    EXHAUSTED = "exhausted"


class BatchFetcher(Protocol):
    """Source of the next batch of ordered statements

    Returns up to BATCH_SIZE statements, or an empty sequence when the poll
    has nothing more to show. Raises only on genuine failure.
    """

    async def fetch_batch(
        self, poll_id: str, user_id: str, batch_number: int
    ) -> Sequence[Statement]: ...


@dataclass(frozen=True)
class VotingSession:
    """Immutable per-(poll, user) voting state

    Attributes:
        statements: Loaded statements in presentation order
        votes: statement_id -> vote value (-1, 0, 1) for this poll
        current_index: Pointer into statements
        current_batch: 1-indexed batch being viewed
        position_in_batch: Visual position within the batch (0-9)
    """

    poll_id: str
    user_id: str
    statements: Tuple[Statement, ...]
    votes: Mapping[str, int]
    total_statements_in_poll: int
    current_index: int = 0
    current_batch: int = 1
    position_in_batch: int = 0

    @property
    def total_voted(self) -> int:
        return len(self.votes)


@dataclass(frozen=True)
class SessionProgress:
    total_voted: int
    current_batch: int
    position_in_batch: int
    statements_in_current_batch: int
    threshold: int
    can_finish: bool
    total_statements_in_poll: int


@dataclass(frozen=True)
class VoteDistribution:
    agree_count: int
    disagree_count: int
    unsure_count: int


@dataclass(frozen=True)
class BatchLoadResult:
    """Outcome of load_next_batch

    loaded is False both when the poll is exhausted (error is None) and
    when the fetch failed (error is set). Either way session is the
    caller's original session.
    """

    session: VotingSession
    loaded: bool
    error: Optional[PollwiseError] = field(default=None)


def _validate_vote(statement_id: str, value: int) -> None:
    if value not in VALID_VOTE_VALUES:
        raise ValidationError(
            f"Invalid vote value for statement {statement_id}: {value}. Must be -1, 0, or 1.",
            field="value",
            value=value,
        )


def _frozen_votes(votes: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(votes))


def _first_unvoted_index(session: VotingSession, start: int) -> Optional[int]:
    for i in range(max(start, 0), len(session.statements)):
        if session.statements[i].id not in session.votes:
            return i
    return None


def get_minimum_voting_threshold(total_statements_in_poll: int) -> int:
    """Votes needed before a user may finish and see insights"""
    return max(0, min(BATCH_SIZE, total_statements_in_poll))


# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------


def create_session(
    statements: Sequence[Statement],
    votes: Mapping[str, int],
    poll_id: str,
    user_id: str,
    total_statements_in_poll: int,
) -> VotingSession:
    """Start or resume a voting session

    A returning user resumes mid-batch: with k existing votes the session
    starts at batch k // 10 + 1, position k % 10.

    Args:
        statements: Ordered statements for the current (and possibly later) batches
        votes: The user's existing votes in this poll
        poll_id: Poll ID
        user_id: User ID
        total_statements_in_poll: Approved statements in the poll

    Returns:
        New VotingSession with the pointer on the first unvoted statement
    """
    for statement_id, value in votes.items():
        _validate_vote(statement_id, value)

    total_voted = len(votes)
    session = VotingSession(
        poll_id=poll_id,
        user_id=user_id,
        statements=tuple(statements),
        votes=_frozen_votes(votes),
        total_statements_in_poll=total_statements_in_poll,
        current_batch=total_voted // BATCH_SIZE + 1,
        position_in_batch=total_voted % BATCH_SIZE,
    )
    return seek_next(session)


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------


def record_vote(session: VotingSession, statement_id: str, value: int) -> VotingSession:
    """Record (or overwrite) a vote locally

    Does not move the pointer and does not persist anything; durable vote
    storage is the caller's job.
    """
    _validate_vote(statement_id, value)
    votes = dict(session.votes)
    votes[statement_id] = value
    return replace(session, votes=_frozen_votes(votes))


def advance(session: VotingSession) -> VotingSession:
    """Move to the next position (call after showing the vote result)"""
    return replace(
        session,
        current_index=session.current_index + 1,
        position_in_batch=session.position_in_batch + 1,
    )


def seek_next(session: VotingSession) -> VotingSession:
    """Move the pointer onto the next unvoted statement

    Positions past the end when everything loaded has been voted.
    Position in batch is unchanged.
    """
    index = _first_unvoted_index(session, session.current_index)
    if index is None:
        index = len(session.statements)
    if index == session.current_index:
        return session
    return replace(session, current_index=index)


async def load_next_batch(session: VotingSession, fetcher: BatchFetcher) -> BatchLoadResult:
    """Fetch and append the next batch of statements

    Success appends statements not already loaded, increments current_batch,
    resets position_in_batch to 0 and points at the first new statement.
    An empty batch (poll exhausted) or a fetch failure returns the original
    session with loaded=False.
    """
    next_batch = session.current_batch + 1

    try:
        batch = await fetcher.fetch_batch(session.poll_id, session.user_id, next_batch)
    except PollwiseError as e:
        logger.warning(
            "failed to load statement batch",
            poll_id=session.poll_id,
            batch_number=next_batch,
            error=str(e),
        )
        return BatchLoadResult(session=session, loaded=False, error=e)
    except Exception as e:
        logger.warning(
            "failed to load statement batch",
            poll_id=session.poll_id,
            batch_number=next_batch,
            error=str(e),
            error_type=type(e).__name__,
        )
        error = BatchFetchError(
            "Failed to fetch statement batch",
            poll_id=session.poll_id,
            batch_number=next_batch,
            original_error=e,
        )
        return BatchLoadResult(session=session, loaded=False, error=error)

    known = {s.id for s in session.statements}
    appended = []
    for stmt in batch or ():
        if stmt.id not in known:
            known.add(stmt.id)
            appended.append(stmt)

    if not appended:
        logger.debug("no more statements", poll_id=session.poll_id, batch_number=next_batch)
        return BatchLoadResult(session=session, loaded=False)

    loaded = replace(
        session,
        statements=session.statements + tuple(appended),
        current_index=len(session.statements),
        current_batch=next_batch,
        position_in_batch=0,
    )

    logger.info(
        "loaded statement batch",
        poll_id=session.poll_id,
        batch_number=next_batch,
        count=len(appended),
    )
    return BatchLoadResult(session=seek_next(loaded), loaded=True)


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


def next_statement(session: VotingSession) -> Optional[Statement]:
    """First unvoted statement at or after the pointer, or None"""
    index = _first_unvoted_index(session, session.current_index)
    if index is None:
        return None
    return session.statements[index]


def current_statement(session: VotingSession) -> Optional[Statement]:
    """Statement under the pointer if it is still unvoted, else None"""
    if session.current_index < len(session.statements):
        stmt = session.statements[session.current_index]
        if stmt.id not in session.votes:
            return stmt
    return None


def is_batch_complete(session: VotingSession) -> bool:
    """True when every loaded statement has a vote"""
    return all(s.id in session.votes for s in session.statements)


def is_last_statement_in_batch(session: VotingSession) -> bool:
    """True when the next unvoted statement is the only one left loaded"""
    index = _first_unvoted_index(session, session.current_index)
    if index is None:
        return False
    return _first_unvoted_index(session, index + 1) is None


def get_progress(session: VotingSession) -> SessionProgress:
    """Values for the progress bar, counter and finish button"""
    total_voted = session.total_voted
    batch_start = (session.current_batch - 1) * BATCH_SIZE
    remaining = session.total_statements_in_poll - batch_start
    threshold = get_minimum_voting_threshold(session.total_statements_in_poll)

    return SessionProgress(
        total_voted=total_voted,
        current_batch=session.current_batch,
        position_in_batch=session.position_in_batch,
        statements_in_current_batch=max(0, min(BATCH_SIZE, remaining)),
        threshold=threshold,
        can_finish=total_voted >= threshold,
        total_statements_in_poll=session.total_statements_in_poll,
    )


def get_vote_distribution(session: VotingSession) -> VoteDistribution:
    values = list(session.votes.values())
    return VoteDistribution(
        agree_count=values.count(VOTE_AGREE),
        disagree_count=values.count(VOTE_DISAGREE),
        unsure_count=values.count(VOTE_PASS),
    )


def has_voted_on_all(session: VotingSession) -> bool:
    return session.total_voted >= session.total_statements_in_poll


def get_state(session: VotingSession) -> SessionState:
    if has_voted_on_all(session):
        return SessionState.EXHAUSTED
    if session.total_voted == 0:
        return SessionState.FRESH
    if is_batch_complete(session):
        return SessionState.BATCH_COMPLETE
    return SessionState.IN_BATCH


def get_user_vote(session: VotingSession, statement_id: str) -> Optional[int]:
    return session.votes.get(statement_id)


def has_voted_on(session: VotingSession, statement_id: str) -> bool:
    return statement_id in session.votes


def get_all_votes(session: VotingSession) -> Dict[str, int]:
    """Copy of the vote map, safe for the caller to mutate"""
    return dict(session.votes)
