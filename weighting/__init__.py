"""Weighting module - statement priority for vote ordering

Scores statements so the ones most useful to opinion clustering are shown
first:
- Clustering mode: predictiveness, consensus potential, recency, pass rate
- Cold start mode: vote count, recency, pass rate
"""

from weighting.calculator import clustering_weight, cold_start_weight
from weighting.service import (
    INVALIDATION_REASONS,
    StatementWeight,
    StatementWeightingService,
    is_eligible_for_clustering,
)

__all__ = [
    "clustering_weight",
    "cold_start_weight",
    "INVALIDATION_REASONS",
    "StatementWeight",
    "StatementWeightingService",
    "is_eligible_for_clustering",
]
