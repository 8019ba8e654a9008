"""
Network-level descriptors of a module within one expression dataset.

For a module M with k features in a dataset with p features, using the
correlation matrix r and adjacency a = f(r) of the injected transform f:

    density        mean a_ij over pairs i < j in M
    mean_cor       mean r_ij over pairs i < j in M
    connectivity   mean intramodular connectivity kIM_i = sum_{j in M, j != i} a_ij
    separability   density - mean a_ij over i in M, j outside M
    prop_var_expl  share of standardized module variance captured by the
                   module eigengene (first principal component)
    mean_kme       mean module membership kME_i = cor(x_i, eigengene);
                   absolute values for unsigned networks

Cross-dataset connectivity preservation over a feature set shared by the
reference and the query:

    cor_kim        cor(kIM_ref, kIM_query)
    cor_kme        cor(kME_ref, kME_query)
    cor_cor        cor of the upper-triangle correlation vectors

NA (None) is returned, never raised, when a module is below the minimum
size or has fewer than two variable features.

References:
    Langfelder P, Luo R, Oldham MC, Horvath S (2011) "Is my network module
    preserved and reproducible?" PLoS Comput Biol 7(1):e1001057.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

import numpy as np
import pandas as pd

from modpres.core.errors import ConfigurationError, InsufficientDataWarning
from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import ModuleAssignment
from modpres.stats.adjacency import AdjacencyTransform
from modpres.utils.correlation import (
    CorrelationMethod,
    correlation_block,
    pearson_vector_correlation,
    standardize_columns,
)

logger = logging.getLogger(__name__)

__all__ = [
    'STATISTICS',
    'CROSS_STATISTICS',
    'ALL_STATISTICS',
    'NetworkStatSnapshot',
    'PreparedNetwork',
    'NetworkStatistics',
]

STATISTICS = (
    "density",
    "mean_cor",
    "connectivity",
    "separability",
    "prop_var_expl",
    "mean_kme",
)

CROSS_STATISTICS = ("cor_kim", "cor_kme", "cor_cor")

ALL_STATISTICS = STATISTICS + CROSS_STATISTICS


def _na_values(names: tuple[str, ...]) -> dict[str, float | None]:
    return {name: None for name in names}


@dataclass(frozen=True)
class NetworkStatSnapshot:
    """
    Statistics of one feature set in one dataset.

    Attributes:
        module: Module label ("" for anonymous pseudo-modules)
        n_features: Number of features requested for the module
        values: Statistic name → value, None where NA
    """

    module: str
    n_features: int
    values: Mapping[str, float | None] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, name: str) -> float | None:
        if name not in self.values:
            raise KeyError(f"Unknown statistic {name!r}; available: {list(self.values)}")
        return self.values[name]

    @property
    def is_na(self) -> bool:
        """True when every statistic is NA."""
        return all(v is None for v in self.values.values())

    def to_dict(self) -> dict[str, float | None]:
        return dict(self.values)


@dataclass(frozen=True)
class PreparedNetwork:
    """
    A dataset standardized once for repeated statistic computation.

    Attributes:
        standardized: Standardized (or rank-standardized) columns, n × p
        variable: Mask of features with non-zero variance
        feature_ids: Column identifiers matching ``standardized``
    """

    standardized: np.ndarray
    variable: np.ndarray
    feature_ids: pd.Index

    @property
    def n_samples(self) -> int:
        return self.standardized.shape[0]

    @property
    def n_features(self) -> int:
        return self.standardized.shape[1]


@dataclass(frozen=True)
class _Intramodular:
    cor: np.ndarray
    adj: np.ndarray
    kim: np.ndarray
    kme: np.ndarray | None
    prop_var_expl: float | None


class NetworkStatistics:
    """
    Computes NetworkStatSnapshots under one fixed adjacency transform.

    The same instance must be used for the reference and the query of a run
    so both are scored on identically constructed networks.

    Args:
        adjacency: Correlation → adjacency transform (default unsigned, power 6)
        correlation_method: "pearson" or "spearman"
        min_module_size: Modules with fewer features are reported as NA
    """

    def __init__(
        self,
        adjacency: AdjacencyTransform | None = None,
        correlation_method: CorrelationMethod = "pearson",
        min_module_size: int = 5,
    ):
        if min_module_size < 2:
            raise ConfigurationError(f"min_module_size must be >= 2, got {min_module_size}")
        if correlation_method not in ("pearson", "spearman"):
            raise ConfigurationError(f"Unknown correlation method: {correlation_method!r}")
        self.adjacency = adjacency or AdjacencyTransform.from_name("unsigned")
        self.correlation_method = correlation_method
        self.min_module_size = min_module_size

    @property
    def signed_membership(self) -> bool:
        """Whether kME keeps its sign (signed networks) or is taken as |kME|."""
        return self.adjacency.name != "unsigned"

    def prepare(self, matrix: ExpressionMatrix) -> PreparedNetwork:
        """Standardize a dataset once; reused by every statistic on it."""
        if matrix.n_samples < 2:
            raise ConfigurationError(
                f"At least 2 samples are required to compute correlations, got {matrix.n_samples}"
            )
        standardized, variable = standardize_columns(matrix.data, self.correlation_method)
        n_constant = int((~variable).sum())
        if n_constant:
            logger.info(f"{n_constant} of {matrix.n_features} features have zero variance")
        return PreparedNetwork(standardized, variable, matrix.feature_ids)

    # ------------------------------------------------------------------
    # Single-dataset statistics
    # ------------------------------------------------------------------

    def compute_stats(
        self,
        matrix: ExpressionMatrix,
        assignment: ModuleAssignment,
        module: str,
        prepared: PreparedNetwork | None = None,
    ) -> NetworkStatSnapshot:
        """
        Statistics of ``module`` as labeled by ``assignment`` in ``matrix``.

        Raises:
            ConfigurationError: If module features are missing from the matrix
        """
        features = assignment.features(module)
        missing = [f for f in features if not matrix.has_feature(f)]
        if missing:
            raise ConfigurationError(
                f"Module {module!r}: {len(missing)} assigned features are not columns "
                f"of the matrix (e.g. {missing[:3]})"
            )

        if prepared is None:
            prepared = self.prepare(matrix)

        if len(features) < self.min_module_size:
            warnings.warn(
                f"Module {module!r} has {len(features)} features "
                f"(< {self.min_module_size}); statistics reported as NA",
                InsufficientDataWarning,
                stacklevel=2,
            )
            return NetworkStatSnapshot(module, len(features), _na_values(STATISTICS))

        indices = matrix.feature_indices(features)
        n_constant = int((~prepared.variable[indices]).sum())
        if n_constant:
            warnings.warn(
                f"Module {module!r}: {n_constant} zero-variance features excluded "
                "from correlation statistics",
                InsufficientDataWarning,
                stacklevel=2,
            )

        return self.compute_feature_set(prepared, indices, module)

    def compute_feature_set(
        self,
        prepared: PreparedNetwork,
        indices: np.ndarray,
        module: str = "",
    ) -> NetworkStatSnapshot:
        """
        Statistics of the feature set at column ``indices`` of a prepared dataset.

        This is the hot path of the permutation null; it neither warns nor
        validates beyond NA handling.
        """
        indices = np.asarray(indices, dtype=np.intp)
        n_requested = len(indices)

        if n_requested < self.min_module_size:
            return NetworkStatSnapshot(module, n_requested, _na_values(STATISTICS))

        keep = indices[prepared.variable[indices]]
        if len(keep) < 2:
            logger.debug(f"Module {module!r}: fewer than 2 variable features, statistics NA")
            return NetworkStatSnapshot(module, n_requested, _na_values(STATISTICS))

        block = correlation_block(prepared.standardized, keep)
        intra = self._intramodular(prepared.standardized[:, keep], block[:, keep])

        k = len(keep)
        upper = np.triu_indices(k, k=1)
        density = float(intra.adj[upper].mean())

        outside = prepared.variable.copy()
        outside[indices] = False
        if outside.any():
            inter = self.adjacency(block[:, outside])
            separability = density - float(inter.mean())
        else:
            separability = None

        if intra.kme is None:
            mean_kme = None
        else:
            kme = intra.kme if self.signed_membership else np.abs(intra.kme)
            mean_kme = float(kme.mean())

        values = {
            "density": density,
            "mean_cor": float(intra.cor[upper].mean()),
            "connectivity": float(intra.kim.mean()),
            "separability": separability,
            "prop_var_expl": intra.prop_var_expl,
            "mean_kme": mean_kme,
        }
        return NetworkStatSnapshot(module, n_requested, values)

    # ------------------------------------------------------------------
    # Cross-dataset statistics
    # ------------------------------------------------------------------

    def cross_stats(
        self,
        reference: PreparedNetwork,
        query: PreparedNetwork,
        ref_indices: np.ndarray,
        query_indices: np.ndarray,
    ) -> dict[str, float | None]:
        """
        Connectivity preservation between two datasets over one feature set.

        ``ref_indices[i]`` and ``query_indices[i]`` must address the same
        feature in the reference and the query.
        """
        ref_indices = np.asarray(ref_indices, dtype=np.intp)
        query_indices = np.asarray(query_indices, dtype=np.intp)
        if ref_indices.shape != query_indices.shape:
            raise ValueError("ref_indices and query_indices must be aligned")

        both = reference.variable[ref_indices] & query.variable[query_indices]
        ref_keep = ref_indices[both]
        query_keep = query_indices[both]
        if len(ref_keep) < 3:
            return _na_values(CROSS_STATISTICS)

        ref_intra = self._intramodular(
            reference.standardized[:, ref_keep],
            correlation_block(reference.standardized, ref_keep, ref_keep),
        )
        query_intra = self._intramodular(
            query.standardized[:, query_keep],
            correlation_block(query.standardized, query_keep, query_keep),
        )

        upper = np.triu_indices(len(ref_keep), k=1)
        if ref_intra.kme is None or query_intra.kme is None:
            cor_kme = None
        else:
            cor_kme = pearson_vector_correlation(ref_intra.kme, query_intra.kme)

        return {
            "cor_kim": pearson_vector_correlation(ref_intra.kim, query_intra.kim),
            "cor_kme": cor_kme,
            "cor_cor": pearson_vector_correlation(ref_intra.cor[upper], query_intra.cor[upper]),
        }

    # ------------------------------------------------------------------

    def _intramodular(self, module_std: np.ndarray, cor: np.ndarray) -> _Intramodular:
        adj = self.adjacency(cor)
        kim = adj.sum(axis=1) - np.diag(adj)

        n_samples = module_std.shape[0]
        u, s, _ = np.linalg.svd(module_std, full_matrices=False)
        total = float((s ** 2).sum())
        if total <= 0:
            return _Intramodular(cor, adj, kim, None, None)

        eigengene = u[:, 0] * s[0]
        # Orient the eigengene with the module's average profile
        if np.dot(eigengene, module_std.mean(axis=1)) < 0:
            eigengene = -eigengene
        prop_var_expl = float(s[0] ** 2 / total)

        eg_std = eigengene.std()
        if eg_std <= 0:
            return _Intramodular(cor, adj, kim, None, prop_var_expl)
        eigengene = (eigengene - eigengene.mean()) / eg_std
        kme = np.clip(module_std.T @ eigengene / n_samples, -1.0, 1.0)
        return _Intramodular(cor, adj, kim, kme, prop_var_expl)
