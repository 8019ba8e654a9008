"""
Preservation Z-scores, summary composites and rank scores.

Per (module, statistic):

    Z = (observed_query - null_mean) / null_std

with null moments from the permutation NullDistribution (std with ddof=1).
Z is NA when the observed value is NA, fewer than two null values are
valid, or the null standard deviation is zero.

Summary Z (documented, configurable default):
    A SummaryPolicy names component groups; each group aggregates the Z of
    its statistics (mean or median), and the summary is the unweighted mean
    of the group composites.

    standard  density=(density,)  connectivity=(connectivity,)
              separability=(separability,)                  -- all "mean"
    wgcna     density=median(mean_cor, density, prop_var_expl, mean_kme)
              connectivity=median(cor_kim, cor_kme, cor_cor)

    na_policy="strict" makes any NA component propagate to NA;
    na_policy="available" aggregates whatever components are present.

Rank score:
    Descriptive and null-free. Each component statistic's observed query
    value is ranked across modules (1 = largest), group ranks aggregate
    like the summary, and the summary rank is the mean of group ranks.
    Lower rank = better preserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Mapping

import numpy as np
from scipy.stats import rankdata

from modpres.core.errors import ConfigurationError
from modpres.stats.network_statistics import ALL_STATISTICS
from modpres.stats.permutation import NullDistribution

logger = logging.getLogger(__name__)

__all__ = [
    'PreservationResult',
    'SummaryGroup',
    'SummaryPolicy',
    'SUMMARY_POLICIES',
    'PreservationScorer',
]

NAPolicy = Literal["strict", "available"]

# Null standard deviations at or below this are treated as zero variance.
_ZERO_STD_TOL = 1e-12


@dataclass(frozen=True)
class PreservationResult:
    """Observed values, null moments and Z-score for one (module, statistic)."""

    module: str
    statistic: str
    observed_ref: float | None
    observed_query: float | None
    null_mean: float | None
    null_std: float | None
    z: float | None
    n_null: int = 0

    @property
    def is_na(self) -> bool:
        return self.z is None

    def to_dict(self) -> dict:
        return {
            'module': self.module,
            'statistic': self.statistic,
            'observed_ref': self.observed_ref,
            'observed_query': self.observed_query,
            'null_mean': self.null_mean,
            'null_std': self.null_std,
            'z': self.z,
            'n_null': self.n_null,
        }


@dataclass(frozen=True)
class SummaryGroup:
    """Component statistics aggregated into one composite score."""

    name: str
    statistics: tuple[str, ...]
    aggregate: Literal["mean", "median"] = "mean"

    def __post_init__(self):
        if not self.statistics:
            raise ConfigurationError(f"Summary group {self.name!r} has no statistics")
        unknown = [s for s in self.statistics if s not in ALL_STATISTICS]
        if unknown:
            raise ConfigurationError(
                f"Summary group {self.name!r} names unknown statistics {unknown}; "
                f"available: {list(ALL_STATISTICS)}"
            )
        if self.aggregate not in ("mean", "median"):
            raise ConfigurationError(f"Unknown aggregate {self.aggregate!r}")


@dataclass(frozen=True)
class SummaryPolicy:
    """Named set of summary groups plus the NA policy for combining them."""

    name: str
    groups: tuple[SummaryGroup, ...]
    na_policy: NAPolicy = "strict"

    def __post_init__(self):
        if not self.groups:
            raise ConfigurationError(f"Summary policy {self.name!r} has no groups")
        if self.na_policy not in ("strict", "available"):
            raise ConfigurationError(
                f"na_policy must be 'strict' or 'available', got {self.na_policy!r}"
            )
        names = [g.name for g in self.groups]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate summary group names: {names}")
        if "summary" in names:
            raise ConfigurationError("'summary' is reserved and cannot name a group")

    @classmethod
    def from_name(cls, name: str = "standard", na_policy: NAPolicy = "strict") -> SummaryPolicy:
        if name not in SUMMARY_POLICIES:
            raise ConfigurationError(
                f"Unknown summary policy {name!r}; expected one of {sorted(SUMMARY_POLICIES)}"
            )
        base = SUMMARY_POLICIES[name]
        return cls(base.name, base.groups, na_policy)

    @property
    def statistics(self) -> tuple[str, ...]:
        """Every component statistic, in group order, without repeats."""
        seen: dict[str, None] = {}
        for group in self.groups:
            for stat in group.statistics:
                seen.setdefault(stat, None)
        return tuple(seen)

    @property
    def group_names(self) -> tuple[str, ...]:
        return tuple(g.name for g in self.groups)

    def combine(self, values: list[float | None], aggregate: str = "mean") -> float | None:
        """Aggregate component values under this policy's NA rule."""
        present = [v for v in values if v is not None]
        if not present:
            return None
        if self.na_policy == "strict" and len(present) != len(values):
            return None
        if aggregate == "median":
            return float(np.median(present))
        return float(np.mean(present))

    def describe(self) -> dict:
        return {
            'name': self.name,
            'na_policy': self.na_policy,
            'groups': {
                g.name: {'statistics': list(g.statistics), 'aggregate': g.aggregate}
                for g in self.groups
            },
        }


SUMMARY_POLICIES = {
    "standard": SummaryPolicy(
        "standard",
        (
            SummaryGroup("density", ("density",)),
            SummaryGroup("connectivity", ("connectivity",)),
            SummaryGroup("separability", ("separability",)),
        ),
    ),
    "wgcna": SummaryPolicy(
        "wgcna",
        (
            SummaryGroup("density", ("mean_cor", "density", "prop_var_expl", "mean_kme"), "median"),
            SummaryGroup("connectivity", ("cor_kim", "cor_kme", "cor_cor"), "median"),
        ),
    ),
}


class PreservationScorer:
    """
    Turns observed statistics and null distributions into Z, summary and rank.

    Args:
        policy: Summary policy (default: "standard", strict NA handling)
    """

    def __init__(self, policy: SummaryPolicy | None = None):
        self.policy = policy or SummaryPolicy.from_name("standard")

    def score(
        self,
        observed_ref: float | None,
        observed_query: float | None,
        null: NullDistribution,
    ) -> PreservationResult:
        """Z-score of one observed query statistic against its null."""
        null_mean = null.mean
        null_std = null.std

        if observed_query is None or null_mean is None or null_std is None:
            z = None
        elif null_std <= _ZERO_STD_TOL:
            logger.debug(f"Module {null.module!r}, {null.statistic}: zero-variance null, Z is NA")
            z = None
        else:
            z = float((observed_query - null_mean) / null_std)

        return PreservationResult(
            module=null.module,
            statistic=null.statistic,
            observed_ref=observed_ref,
            observed_query=observed_query,
            null_mean=null_mean,
            null_std=null_std,
            z=z,
            n_null=null.n_valid,
        )

    def score_module(
        self,
        observed_ref: Mapping[str, float | None],
        observed_query: Mapping[str, float | None],
        nulls: Mapping[str, NullDistribution],
    ) -> dict[str, PreservationResult]:
        """Score every statistic that has a null distribution."""
        return {
            stat: self.score(observed_ref.get(stat), observed_query.get(stat), null)
            for stat, null in nulls.items()
        }

    def group_scores(self, results: Mapping[str, PreservationResult]) -> dict[str, float | None]:
        """Composite Z per summary group."""
        scores = {}
        for group in self.policy.groups:
            components = [
                results[stat].z if stat in results else None
                for stat in group.statistics
            ]
            scores[group.name] = self.policy.combine(components, group.aggregate)
        return scores

    def summarize(self, results: Mapping[str, PreservationResult]) -> float | None:
        """Summary Z: unweighted mean of the group composites."""
        groups = self.group_scores(results)
        return self.policy.combine(list(groups.values()), "mean")

    def rank(
        self,
        observed_query: Mapping[str, Mapping[str, float | None]],
    ) -> dict[str, dict[str, float | None]]:
        """
        Null-free rank scores per module.

        Args:
            observed_query: module → statistic → observed query value

        Returns:
            module → {group name: rank, ..., "summary": rank}
        """
        modules = list(observed_query)
        stat_ranks: dict[str, dict[str, float | None]] = {m: {} for m in modules}

        for stat in self.policy.statistics:
            present = [m for m in modules if observed_query[m].get(stat) is not None]
            for m in modules:
                stat_ranks[m][stat] = None
            if present:
                values = np.array([observed_query[m][stat] for m in present], dtype=np.float64)
                ranks = rankdata(-values, method="average")
                for m, r in zip(present, ranks):
                    stat_ranks[m][stat] = float(r)

        out: dict[str, dict[str, float | None]] = {}
        for m in modules:
            groups = {
                group.name: self.policy.combine(
                    [stat_ranks[m][s] for s in group.statistics], group.aggregate
                )
                for group in self.policy.groups
            }
            groups["summary"] = self.policy.combine(list(groups.values()), "mean")
            out[m] = groups
        return out
