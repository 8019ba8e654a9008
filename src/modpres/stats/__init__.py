"""
Statistical core of module preservation analysis.

Exports:
- Adjacency transforms (correlation → network adjacency)
- Network statistics per module and cross-dataset preservation statistics
- Permutation null distributions
- Z-scores, summary composites and rank scores
"""

from .adjacency import AdjacencyTransform, NETWORK_TYPES, DEFAULT_POWERS
from .network_statistics import (
    STATISTICS,
    CROSS_STATISTICS,
    ALL_STATISTICS,
    NetworkStatSnapshot,
    NetworkStatistics,
    PreparedNetwork,
)
from .permutation import (
    NullDistribution,
    NullDistributionBuilder,
    NullRequest,
    PermutationEngine,
    permutation_rng,
)
from .scoring import (
    PreservationResult,
    PreservationScorer,
    SummaryGroup,
    SummaryPolicy,
    SUMMARY_POLICIES,
)

__all__ = [
    "AdjacencyTransform",
    "NETWORK_TYPES",
    "DEFAULT_POWERS",
    "STATISTICS",
    "CROSS_STATISTICS",
    "ALL_STATISTICS",
    "NetworkStatSnapshot",
    "NetworkStatistics",
    "PreparedNetwork",
    "NullDistribution",
    "NullDistributionBuilder",
    "NullRequest",
    "PermutationEngine",
    "permutation_rng",
    "PreservationResult",
    "PreservationScorer",
    "SummaryGroup",
    "SummaryPolicy",
    "SUMMARY_POLICIES",
]
