"""Voting module - per-user progress through a poll

Batches of 10 statements, resume mid-batch, finish threshold.
"""

from voting.session import (
    BATCH_SIZE,
    BatchFetcher,
    BatchLoadResult,
    SessionProgress,
    SessionState,
    VoteDistribution,
    VotingSession,
    create_session,
    get_minimum_voting_threshold,
)

__all__ = [
    "BATCH_SIZE",
    "BatchFetcher",
    "BatchLoadResult",
    "SessionProgress",
    "SessionState",
    "VoteDistribution",
    "VotingSession",
    "create_session",
    "get_minimum_voting_threshold",
]
