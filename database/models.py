"""
Database Models for Pollwise

Pydantic dataclasses with runtime validation for core entities.
"""

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Tuple

from pydantic import NonNegativeFloat, NonNegativeInt
from pydantic.dataclasses import dataclass

from exceptions import ValidationError

WeightMode = Literal["clustering", "cold_start"]

MODE_CLUSTERING = "clustering"
MODE_COLD_START = "cold_start"

# Vote values as stored in the votes table
VOTE_DISAGREE = -1
VOTE_PASS = 0
VOTE_AGREE = 1
VALID_VOTE_VALUES = (VOTE_DISAGREE, VOTE_PASS, VOTE_AGREE)


class StatementClassification(str, Enum):
    """Upstream clustering verdict for a statement"""

    POSITIVE_CONSENSUS = "positive_consensus"
    NEGATIVE_CONSENSUS = "negative_consensus"
    BRIDGE = "bridge"
    DIVISIVE = "divisive"
    NORMAL = "normal"

    @classmethod
    def parse(cls, value) -> "StatementClassification":
        """Coerce a raw tag into a classification; unknown tags become NORMAL"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NORMAL


# --- Domain Dataclasses (with runtime validation) ---


@dataclass(frozen=True)
class Statement:
    """Statement entity - only the fields the weighting core reads"""

    id: str
    poll_id: str
    created_at: datetime
    text: Optional[str] = None


@dataclass(frozen=True)
class VoteTally:
    """Agree/disagree/pass counts for one statement at one point in time"""

    agree_count: NonNegativeInt = 0
    disagree_count: NonNegativeInt = 0
    pass_count: NonNegativeInt = 0

    @property
    def total(self) -> int:
        return self.agree_count + self.disagree_count + self.pass_count


@dataclass(frozen=True)
class StatementAnalysis:
    """Clustering output for one statement: classification + per-group agreement"""

    statement_id: str
    classification: StatementClassification
    group_agreements: Tuple[float, ...] = ()


@dataclass(frozen=True)
class WeightComponents:
    """Weight factors and their product, as produced by the calculator"""

    predictiveness: NonNegativeFloat
    consensus_potential: NonNegativeFloat
    recency_boost: NonNegativeFloat
    pass_rate_penalty: NonNegativeFloat
    combined_weight: NonNegativeFloat
    mode: WeightMode
    vote_count_boost: Optional[NonNegativeFloat] = None


@dataclass(frozen=True)
class WeightRecord:
    """Cached weight for one (poll_id, statement_id)

    Mode invariants:
    - clustering: vote_count_boost is absent
    - cold_start: predictiveness and consensus_potential are 0, vote_count_boost present

    Vote counts are the tally at calculation time, kept for debugging only.
    """

    poll_id: str
    statement_id: str
    predictiveness: NonNegativeFloat
    consensus_potential: NonNegativeFloat
    recency_boost: NonNegativeFloat
    pass_rate_penalty: NonNegativeFloat
    combined_weight: NonNegativeFloat
    mode: WeightMode
    agree_count: NonNegativeInt = 0
    disagree_count: NonNegativeInt = 0
    pass_count: NonNegativeInt = 0
    vote_count_boost: Optional[NonNegativeFloat] = None
    calculated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate mode invariants after initialization"""
        if self.mode == MODE_CLUSTERING and self.vote_count_boost is not None:
            raise ValidationError(
                "clustering weights must not carry a vote_count_boost",
                field="vote_count_boost",
                value=self.vote_count_boost,
            )
        if self.mode == MODE_COLD_START:
            if self.vote_count_boost is None:
                raise ValidationError(
                    "cold_start weights require a vote_count_boost",
                    field="vote_count_boost",
                )
            if self.predictiveness != 0 or self.consensus_potential != 0:
                raise ValidationError(
                    "cold_start weights must have zero predictiveness and consensus_potential",
                    field="mode",
                    value=self.mode,
                )

    @classmethod
    def from_components(
        cls,
        poll_id: str,
        statement_id: str,
        components: WeightComponents,
        tally: VoteTally,
        calculated_at: Optional[datetime] = None,
    ) -> "WeightRecord":
        return cls(
            poll_id=poll_id,
            statement_id=statement_id,
            predictiveness=components.predictiveness,
            consensus_potential=components.consensus_potential,
            recency_boost=components.recency_boost,
            pass_rate_penalty=components.pass_rate_penalty,
            combined_weight=components.combined_weight,
            mode=components.mode,
            agree_count=tally.agree_count,
            disagree_count=tally.disagree_count,
            pass_count=tally.pass_count,
            vote_count_boost=components.vote_count_boost,
            calculated_at=calculated_at,
        )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.poll_id, self.statement_id)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        if self.calculated_at:
            data["calculated_at"] = self.calculated_at.isoformat()
        return data
