"""
Module preservation pipeline.

ModulePreservationRunner evaluates how well reference modules reproduce in
a query dataset onto which the reference module labels were projected:

    Idle → Validating → ComputingObserved → Permuting → Scoring → Stored
                 ↘ Failed (any error)        ↘ Cancelled (token set)

Nothing is written to the ResultStore until the Stored step, so a failed or
cancelled run never replaces an earlier result of the same name.

Examples:
    >>> from modpres import PreservationSession
    >>> session = PreservationSession()
    >>> result = session.run(
    ...     ref_matrix, ref_modules, query_matrix, query_modules,
    ...     name="astrocytes", n_permutations=250, seed=12345,
    ... )
    >>> session.get("astrocytes").select("Z", "summary")
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd

from modpres.config import PreservationConfig
from modpres.core.cancellation import CancellationToken
from modpres.core.errors import (
    ConfigurationError,
    InsufficientDataWarning,
    PreservationCancelled,
)
from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import ModuleAssignment
from modpres.stats.network_statistics import (
    ALL_STATISTICS,
    CROSS_STATISTICS,
    STATISTICS,
    NetworkStatistics,
    NetworkStatSnapshot,
    PreparedNetwork,
)
from modpres.stats.permutation import NullRequest, PermutationEngine
from modpres.stats.scoring import PreservationResult, PreservationScorer
from modpres.store import PreservationResultSet, ResultStore

logger = logging.getLogger(__name__)

__all__ = [
    'RunState',
    'ModulePreservationRunner',
    'PreservationSession',
]


class RunState(Enum):
    """Lifecycle of a preservation run."""

    IDLE = "idle"
    VALIDATING = "validating"
    COMPUTING_OBSERVED = "computing_observed"
    PERMUTING = "permuting"
    SCORING = "scoring"
    STORED = "stored"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class _RunInputs:
    ref_matrix: ExpressionMatrix
    query_matrix: ExpressionMatrix
    ref_assignment: ModuleAssignment
    query_assignment: ModuleAssignment
    modules: list[str]
    module_index: dict[str, int]
    n_permutations: int
    seed: int
    low_confidence: bool


@dataclass
class _Observed:
    ref: dict[str, NetworkStatSnapshot]
    query: dict[str, NetworkStatSnapshot]
    cross: dict[str, dict[str, float | None]]
    scored: list[str]


class ModulePreservationRunner:
    """
    Orchestrates observed statistics, permutation nulls and scoring.

    Args:
        config: Run configuration (defaults to PreservationConfig())
        store: Destination store; a private store is created if omitted
    """

    def __init__(
        self,
        config: PreservationConfig | None = None,
        store: ResultStore | None = None,
    ):
        self.config = config or PreservationConfig()
        self.config.validate()
        self.store = store if store is not None else ResultStore()

        self.statistics = NetworkStatistics(
            adjacency=self.config.adjacency(),
            correlation_method=self.config.network.correlation_method,
            min_module_size=self.config.min_module_size,
        )
        perm = self.config.permutation
        self.engine = PermutationEngine(
            self.statistics,
            n_workers=perm.n_workers,
            batch_size=perm.batch_size,
            min_permutations=perm.min_permutations,
            recommended_permutations=perm.recommended_permutations,
            show_progress=self.config.show_progress,
        )
        self.scorer = PreservationScorer(self.config.summary_policy())

        self._state = RunState.IDLE
        self.history: list[RunState] = [RunState.IDLE]
        self.error: BaseException | None = None

    @property
    def state(self) -> RunState:
        return self._state

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Preservation run: {self._state.value} → {state.value}")
        self._state = state
        self.history.append(state)

    def run(
        self,
        ref_matrix: ExpressionMatrix | pd.DataFrame,
        ref_assignment: ModuleAssignment | pd.Series,
        query_matrix: ExpressionMatrix | pd.DataFrame,
        query_assignment: ModuleAssignment | pd.Series,
        name: str,
        n_permutations: int | None = None,
        seed: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PreservationResultSet:
        """
        Run the full preservation analysis and store the result under ``name``.

        Args:
            ref_matrix: Reference expression (samples × features)
            ref_assignment: Reference feature → module labels
            query_matrix: Query expression (samples × features)
            query_assignment: Projected query feature → module labels
            name: Analysis name for the ResultStore
            n_permutations: Overrides config.permutation.n_permutations
            seed: Overrides config.permutation.seed
            cancel_token: Cooperative cancellation, checked between batches

        Returns:
            The stored PreservationResultSet

        Raises:
            ConfigurationError: Invalid inputs (state Failed)
            PreservationCancelled: Token set during the run (state Cancelled)
        """
        self.history = [RunState.IDLE]
        self._state = RunState.IDLE
        self.error = None

        try:
            self._transition(RunState.VALIDATING)
            inputs = self._validate(
                ref_matrix, ref_assignment, query_matrix, query_assignment,
                name, n_permutations, seed,
            )
            self._check_cancel(cancel_token, "before observed statistics")

            self._transition(RunState.COMPUTING_OBSERVED)
            ref_prep = self.statistics.prepare(inputs.ref_matrix)
            query_prep = self.statistics.prepare(inputs.query_matrix)
            observed = self._compute_observed(inputs, ref_prep, query_prep)
            self._check_cancel(cancel_token, "before permutations")

            self._transition(RunState.PERMUTING)
            requests = [
                NullRequest(m, inputs.module_index[m], inputs.query_assignment.size(m))
                for m in observed.scored
            ]
            nulls = {}
            if requests:
                nulls = self.engine.generate_nulls(
                    query_prep, requests, inputs.n_permutations, inputs.seed,
                    reference=ref_prep, cancel_token=cancel_token,
                )
            self._check_cancel(cancel_token, "before scoring")

            self._transition(RunState.SCORING)
            result = self._score(name, inputs, observed, nulls)
            self._check_cancel(cancel_token, "before publishing")

            self.store.set(name, result)
            self._transition(RunState.STORED)
            logger.info(
                f"Stored preservation result {name!r}: {len(result.modules)} modules, "
                f"{len(result.scored_modules)} scored"
            )
            return result

        except PreservationCancelled as e:
            self.error = e
            self._transition(RunState.CANCELLED)
            logger.warning(f"Preservation run {name!r} cancelled; store left unchanged")
            raise
        except Exception as e:
            self.error = e
            self._transition(RunState.FAILED)
            logger.error(f"Preservation run {name!r} failed: {e}")
            raise

    # ------------------------------------------------------------------
    # Validating
    # ------------------------------------------------------------------

    def _validate(
        self,
        ref_matrix,
        ref_assignment,
        query_matrix,
        query_assignment,
        name,
        n_permutations,
        seed,
    ) -> _RunInputs:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Analysis name must be a non-empty string, got {name!r}")

        ref_matrix = self._as_matrix(ref_matrix, "reference")
        query_matrix = self._as_matrix(query_matrix, "query")
        ref_assignment = self._as_assignment(ref_assignment, "reference")
        query_assignment = self._as_assignment(query_assignment, "query")

        if ref_assignment.unassigned_label != query_assignment.unassigned_label:
            raise ConfigurationError(
                f"Reference and query use different unassigned labels "
                f"({ref_assignment.unassigned_label!r} vs {query_assignment.unassigned_label!r})"
            )

        scheme = set(ref_assignment.labels)
        ref_used = self._restrict(ref_assignment, ref_matrix, "reference")
        query_used = self._restrict(query_assignment, query_matrix, "query")

        foreign = sorted(set(query_used.labels) - scheme)
        if foreign:
            raise ConfigurationError(
                f"Query modules {foreign} are not part of the reference labeling; "
                "the query assignment must be a projection of the reference modules"
            )

        modules = sorted(set(ref_used.labels) & set(query_used.labels))
        if not modules:
            raise ConfigurationError(
                "No module is present in both the reference and the query assignment"
            )

        shared_features = ref_matrix.feature_ids.intersection(query_matrix.feature_ids)
        if len(shared_features) == 0:
            raise ConfigurationError("Reference and query matrices share no features")

        if n_permutations is None:
            n_permutations = self.config.permutation.n_permutations
        if seed is None:
            seed = self.config.permutation.seed
        if isinstance(n_permutations, bool) or not isinstance(n_permutations, (int, np.integer)):
            raise ConfigurationError(f"n_permutations must be an integer, got {n_permutations!r}")
        if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {seed!r}")
        low_confidence = self.engine.check_permutations(int(n_permutations))

        # Seeds follow the position in the reference scheme so a module's
        # null does not change when other modules are added or dropped.
        module_index = {m: i for i, m in enumerate(sorted(scheme))}

        logger.info(
            f"Validated preservation inputs: reference {ref_matrix.n_samples}×{ref_matrix.n_features}, "
            f"query {query_matrix.n_samples}×{query_matrix.n_features}, "
            f"{len(modules)} shared modules"
        )

        return _RunInputs(
            ref_matrix=ref_matrix,
            query_matrix=query_matrix,
            ref_assignment=ref_used,
            query_assignment=query_used,
            modules=modules,
            module_index=module_index,
            n_permutations=int(n_permutations),
            seed=int(seed),
            low_confidence=low_confidence,
        )

    @staticmethod
    def _as_matrix(matrix, label: str) -> ExpressionMatrix:
        if isinstance(matrix, pd.DataFrame):
            matrix = ExpressionMatrix.from_frame(matrix)
        if not isinstance(matrix, ExpressionMatrix):
            raise ConfigurationError(
                f"{label} matrix must be ExpressionMatrix or DataFrame, got {type(matrix)}"
            )
        if matrix.n_samples == 0 or matrix.n_features == 0:
            raise ConfigurationError(f"{label} matrix is empty (shape {matrix.shape})")
        if matrix.n_samples < 2:
            raise ConfigurationError(
                f"{label} matrix has {matrix.n_samples} sample; at least 2 are required"
            )
        if np.isnan(matrix.data).any():
            raise ConfigurationError(
                f"{label} matrix contains {int(np.isnan(matrix.data).sum())} NaN values"
            )
        return matrix

    def _as_assignment(self, assignment, label: str) -> ModuleAssignment:
        if isinstance(assignment, pd.Series):
            assignment = ModuleAssignment(assignment, self.config.unassigned_label)
        if not isinstance(assignment, ModuleAssignment):
            raise ConfigurationError(
                f"{label} assignment must be ModuleAssignment or Series, got {type(assignment)}"
            )
        if assignment.unassigned_label != self.config.unassigned_label:
            raise ConfigurationError(
                f"{label} assignment reserves {assignment.unassigned_label!r} for unassigned "
                f"features but the configuration uses {self.config.unassigned_label!r}"
            )
        return assignment

    @staticmethod
    def _restrict(
        assignment: ModuleAssignment,
        matrix: ExpressionMatrix,
        label: str,
    ) -> ModuleAssignment:
        dropped = [
            f for m in assignment.labels for f in assignment.features(m)
            if not matrix.has_feature(f)
        ]
        if dropped:
            warnings.warn(
                f"{len(dropped)} assigned {label} features are not in the {label} matrix "
                f"and were dropped (e.g. {dropped[:3]})",
                InsufficientDataWarning,
                stacklevel=4,
            )
            logger.warning(f"Dropped {len(dropped)} {label} features missing from the matrix")
        return assignment.restrict(matrix.feature_ids)

    # ------------------------------------------------------------------
    # ComputingObserved
    # ------------------------------------------------------------------

    def _compute_observed(
        self,
        inputs: _RunInputs,
        ref_prep: PreparedNetwork,
        query_prep: PreparedNetwork,
    ) -> _Observed:
        min_size = self.config.min_module_size
        observed = _Observed(ref={}, query={}, cross={}, scored=[])

        for module in inputs.modules:
            ref_size = inputs.ref_assignment.size(module)
            query_size = inputs.query_assignment.size(module)

            if ref_size < min_size or query_size < min_size:
                warnings.warn(
                    f"Module {module!r} below minimum size {min_size} "
                    f"(reference {ref_size}, query {query_size}); reported as NA",
                    InsufficientDataWarning,
                    stacklevel=4,
                )
                logger.info(f"Module {module!r} skipped: reference {ref_size}, query {query_size} features")
                observed.ref[module] = NetworkStatSnapshot(module, ref_size, dict.fromkeys(STATISTICS))
                observed.query[module] = NetworkStatSnapshot(module, query_size, dict.fromkeys(STATISTICS))
                observed.cross[module] = dict.fromkeys(CROSS_STATISTICS)
                continue

            observed.ref[module] = self.statistics.compute_stats(
                inputs.ref_matrix, inputs.ref_assignment, module, prepared=ref_prep
            )
            observed.query[module] = self.statistics.compute_stats(
                inputs.query_matrix, inputs.query_assignment, module, prepared=query_prep
            )

            query_idx = inputs.query_matrix.feature_indices(inputs.query_assignment.features(module))
            ref_idx = ref_prep.feature_ids.get_indexer(query_prep.feature_ids[query_idx])
            shared = ref_idx >= 0
            observed.cross[module] = self.statistics.cross_stats(
                ref_prep, query_prep, ref_idx[shared], query_idx[shared]
            )
            observed.scored.append(module)

        return observed

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _score(
        self,
        name: str,
        inputs: _RunInputs,
        observed: _Observed,
        nulls: dict,
    ) -> PreservationResultSet:
        groups = self.scorer.policy.group_names
        z_rows: dict[str, dict[str, Any]] = {}
        obs_rows: dict[str, dict[str, Any]] = {}
        details: list[dict] = []

        observed_query = {
            m: {**observed.query[m].to_dict(), **observed.cross[m]}
            for m in inputs.modules
        }
        ranks = self.scorer.rank({m: observed_query[m] for m in observed.scored})

        for module in inputs.modules:
            sizes = {
                'module_size': inputs.query_assignment.size(module),
                'ref_module_size': inputs.ref_assignment.size(module),
            }
            ref_values = observed.ref[module].to_dict()

            if module in nulls:
                results: dict[str, PreservationResult] = self.scorer.score_module(
                    ref_values, observed_query[module], nulls[module]
                )
                group_z = self.scorer.group_scores(results)
                summary = self.scorer.summarize(results)
                details.extend(r.to_dict() for r in results.values())
            else:
                results = {}
                group_z = dict.fromkeys(groups)
                summary = None

            z_row = dict(sizes)
            for stat in ALL_STATISTICS:
                z_row[f"z.{stat}"] = results[stat].z if stat in results else None
            for group in groups:
                z_row[f"summary.{group}"] = group_z[group]
            z_row["summary"] = summary
            z_rows[module] = z_row

            obs_row = dict(sizes)
            for stat in STATISTICS:
                obs_row[f"ref.{stat}"] = ref_values.get(stat)
            for stat in ALL_STATISTICS:
                obs_row[f"obs.{stat}"] = observed_query[module].get(stat)
            module_ranks = ranks.get(module, {})
            for group in groups:
                obs_row[f"rank.{group}"] = module_ranks.get(group)
            obs_row["rank.summary"] = module_ranks.get("summary")
            obs_rows[module] = obs_row

        return PreservationResultSet(
            name=name,
            Z=_to_table(z_rows, inputs.modules),
            obs=_to_table(obs_rows, inputs.modules),
            details=pd.DataFrame(details),
            n_permutations=inputs.n_permutations,
            seed=inputs.seed,
            min_module_size=self.config.min_module_size,
            low_confidence=inputs.low_confidence,
            config=self.config.to_dict(),
        )

    @staticmethod
    def _check_cancel(token: CancellationToken | None, context: str) -> None:
        if token is not None:
            token.raise_if_cancelled(context)


def _to_table(rows: dict[str, dict[str, Any]], modules: list[str]) -> pd.DataFrame:
    """Module-indexed table with Int64 sizes and nullable Float64 statistics."""
    columns = list(next(iter(rows.values())))
    index = pd.Index(modules, name="module")
    data = {}
    for column in columns:
        values = [rows[m][column] for m in modules]
        dtype = "Int64" if column in ("module_size", "ref_module_size") else "Float64"
        data[column] = pd.Series(values, index=index, dtype=dtype)
    return pd.DataFrame(data, index=index)


class PreservationSession:
    """
    Analysis session owning the named result store.

    Producers (runs) and consumers (reporting, plotting) share the session
    by reference; there is no module-level result state.

    Args:
        config: Default configuration for runs started from this session
    """

    def __init__(self, config: PreservationConfig | None = None):
        self.config = config or PreservationConfig()
        self.store = ResultStore()

    def runner(self, config: PreservationConfig | None = None) -> ModulePreservationRunner:
        return ModulePreservationRunner(config or self.config, store=self.store)

    def run(self, *args, config: PreservationConfig | None = None, **kwargs) -> PreservationResultSet:
        """Run a preservation analysis and store it; see ModulePreservationRunner.run."""
        return self.runner(config).run(*args, **kwargs)

    def get(self, name: str) -> PreservationResultSet:
        return self.store.get(name)

    def set(self, name: str, result: PreservationResultSet) -> None:
        self.store.set(name, result)

    def names(self) -> list[str]:
        return self.store.names()
