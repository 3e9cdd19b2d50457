"""Statement weight calculation

Scores how worth surfacing a statement is to the next voter.

Factors:
1. Predictiveness (clustering mode) - variance of per-group agreement
2. Consensus potential (clustering mode) - likelihood of cross-group agreement
3. Recency boost (both modes) - new statements first, 7-day half-life
4. Pass rate penalty (both modes) - downweight confusing statements
5. Vote count boost (cold start mode) - favour under-voted statements

Combined weight is the product of the factors for the active mode. Every
factor is non-negative, so the product is too.

All functions here are pure: no I/O, no clock reads unless `now` is omitted,
and degenerate inputs resolve to neutral defaults instead of raising.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence, Union

import numpy as np

from database.models import (
    MODE_CLUSTERING,
    MODE_COLD_START,
    StatementClassification,
    VoteTally,
    WeightComponents,
)

# Predictiveness: two groups at 0.0 and 1.0 give the largest variance
MAX_AGREEMENT_VARIANCE = 0.25

# Consensus potential
BRIDGE_CONSENSUS_POTENTIAL = 0.7
STRONG_AGREE_THRESHOLD = 0.6
STRONG_DISAGREE_THRESHOLD = 0.4

# Recency boost
FRESH_WINDOW_DAYS = 1.0
MAX_RECENCY_BOOST = 2.0
MIN_RECENCY_BOOST = 0.1
RECENCY_HALF_LIFE_DAYS = 7.0

# Pass rate penalty
NEUTRAL_PASS_RATE_PENALTY = 0.5
PASS_RATE_SLOPE = 0.9
MIN_PASS_RATE_PENALTY = 0.1

# Vote count boost
NEUTRAL_VOTE_COUNT_BOOST = 1.0
MIN_VOTE_COUNT_BOOST = 0.5
MAX_VOTE_COUNT_BOOST = 1.5

SECONDS_PER_DAY = 86400.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _agreement_array(group_agreements: Sequence[float]) -> np.ndarray:
    """Group agreements as a float array clipped to [0, 1]

    Non-finite entries (a group with no voters reports 0/0) are dropped.
    """
    values = np.asarray(list(group_agreements), dtype=float)
    values = values[np.isfinite(values)]
    return np.clip(values, 0.0, 1.0)


def predictiveness(group_agreements: Sequence[float]) -> float:
    """How strongly a statement separates opinion groups.

    Population variance of group agreement, normalised by the maximum
    attainable variance (0.25) and capped at 1.0.

    Examples:
        predictiveness([1.0, 0.0]) -> 1.0
        predictiveness([0.9, 0.1, 0.85, 0.05]) -> ~0.64
        predictiveness([0.52, 0.50, 0.48, 0.51]) -> ~0.001

    Args:
        group_agreements: Fraction of each group that agreed

    Returns:
        Score in [0, 1]; 0 for fewer than two groups
    """
    values = _agreement_array(group_agreements)
    if values.size < 2:
        return 0.0

    variance = float(np.var(values))
    return min(variance / MAX_AGREEMENT_VARIANCE, 1.0)


def consensus_potential(
    group_agreements: Sequence[float],
    classification: Union[StatementClassification, str],
) -> float:
    """Likelihood that a statement unifies opinion across groups.

    - positive/negative consensus: 1.0
    - bridge: 0.7
    - otherwise: share of groups holding a strong view (>0.6 or <0.4)

    Args:
        group_agreements: Fraction of each group that agreed
        classification: Upstream classification tag

    Returns:
        Score in [0, 1]
    """
    kind = StatementClassification.parse(classification)

    if kind in (
        StatementClassification.POSITIVE_CONSENSUS,
        StatementClassification.NEGATIVE_CONSENSUS,
    ):
        return 1.0

    if kind == StatementClassification.BRIDGE:
        return BRIDGE_CONSENSUS_POTENTIAL

    values = _agreement_array(group_agreements)
    if values.size == 0:
        return 0.0

    strong = (values > STRONG_AGREE_THRESHOLD) | (values < STRONG_DISAGREE_THRESHOLD)
    return float(np.count_nonzero(strong)) / float(values.size)


def recency_boost(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Time-based priority for new statements.

    Under one day old: flat 2.0. After that, 2.0 halved every 7 days
    (measured from creation), never below 0.1.

    Examples:
        12 hours old -> 2.0
        7 days old -> 1.0
        14 days old -> 0.5
        90 days old -> 0.1

    Args:
        created_at: Statement creation time (naive values are taken as UTC)
        now: Reference time, defaults to the current UTC time

    Returns:
        Boost in [0.1, 2.0]
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_days = (now - created_at).total_seconds() / SECONDS_PER_DAY

    if age_days < FRESH_WINDOW_DAYS:
        return MAX_RECENCY_BOOST

    boost = MAX_RECENCY_BOOST * 0.5 ** (age_days / RECENCY_HALF_LIFE_DAYS)
    return _clamp(boost, MIN_RECENCY_BOOST, MAX_RECENCY_BOOST)


def pass_rate_penalty(tally: VoteTally) -> float:
    """Downweight statements voters keep passing on.

    Linear map from pass rate: 0% -> 1.0, 100% -> 0.1.
    No votes yet -> 0.5.

    Args:
        tally: Vote counts for the statement

    Returns:
        Penalty multiplier in [0.1, 1.0]
    """
    total = tally.total
    if total == 0:
        return NEUTRAL_PASS_RATE_PENALTY

    pass_rate = tally.pass_count / total
    return max(1.0 - PASS_RATE_SLOPE * pass_rate, MIN_PASS_RATE_PENALTY)


def vote_count_boost(vote_count: int, avg_vote_count: float) -> float:
    """Favour statements with fewer votes than the poll average.

    Formula: clamp(2.0 - vote_count / avg_vote_count, 0.5, 1.5)

    Examples:
        vote_count_boost(0, 10) -> 1.5
        vote_count_boost(10, 10) -> 1.0
        vote_count_boost(15, 10) -> 0.5

    Args:
        vote_count: Votes this statement has received
        avg_vote_count: Mean votes per statement in the poll

    Returns:
        Boost in [0.5, 1.5]; 1.0 when the average is zero
    """
    if avg_vote_count <= 0:
        return NEUTRAL_VOTE_COUNT_BOOST

    ratio = max(vote_count, 0) / avg_vote_count
    return _clamp(2.0 - ratio, MIN_VOTE_COUNT_BOOST, MAX_VOTE_COUNT_BOOST)


def clustering_weight(
    group_agreements: Sequence[float],
    classification: Union[StatementClassification, str],
    created_at: datetime,
    tally: VoteTally,
    now: Optional[datetime] = None,
) -> WeightComponents:
    """Weight for polls with clustering data.

    combined = predictiveness * consensus_potential * recency * pass_rate
    """
    p = predictiveness(group_agreements)
    c = consensus_potential(group_agreements, classification)
    r = recency_boost(created_at, now)
    penalty = pass_rate_penalty(tally)

    return WeightComponents(
        predictiveness=p,
        consensus_potential=c,
        recency_boost=r,
        pass_rate_penalty=penalty,
        combined_weight=p * c * r * penalty,
        mode=MODE_CLUSTERING,
        vote_count_boost=None,
    )


def cold_start_weight(
    created_at: datetime,
    tally: VoteTally,
    vote_count: int,
    avg_vote_count: float,
    now: Optional[datetime] = None,
) -> WeightComponents:
    """Weight for polls without enough data to cluster.

    combined = vote_count_boost * recency * pass_rate
    """
    r = recency_boost(created_at, now)
    penalty = pass_rate_penalty(tally)
    boost = vote_count_boost(vote_count, avg_vote_count)

    return WeightComponents(
        predictiveness=0.0,
        consensus_potential=0.0,
        recency_boost=r,
        pass_rate_penalty=penalty,
        combined_weight=boost * r * penalty,
        mode=MODE_COLD_START,
        vote_count_boost=boost,
    )
