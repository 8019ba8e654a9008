"""
Competitive permutation null for module preservation statistics.

Null model: a module of size k is compared against random "pseudo-modules"
of k features drawn uniformly without replacement from the full query
feature pool. Each draw is scored with the same NetworkStatistics as the
observed module, so the null keeps the query's correlation structure and
only breaks the module membership.

Reproducibility:
    Every (module, permutation) pair draws from its own generator,

        SeedSequence(seed, spawn_key=(module_index, permutation_index))

    so null distributions are bit-identical for a given seed regardless of
    worker count, batch size or completion order.

Parallelism:
    Work is split into (module, batch of permutation indices) units run on
    a ThreadPoolExecutor. A unit writes only to its own permutation slots;
    freezing a module's builder after all its units finish is the only
    synchronization point. numpy releases the GIL inside the matrix
    products that dominate each unit.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Mapping

import numpy as np
from tqdm import tqdm

from modpres.core.cancellation import CancellationToken
from modpres.core.errors import ConfigurationError
from modpres.stats.network_statistics import (
    CROSS_STATISTICS,
    STATISTICS,
    NetworkStatistics,
    PreparedNetwork,
)

logger = logging.getLogger(__name__)

__all__ = [
    'permutation_rng',
    'NullDistribution',
    'NullDistributionBuilder',
    'NullRequest',
    'PermutationEngine',
]


def permutation_rng(seed: int, module_index: int, permutation_index: int) -> np.random.Generator:
    """Independent generator for one permutation of one module."""
    ss = np.random.SeedSequence(entropy=seed, spawn_key=(module_index, permutation_index))
    return np.random.default_rng(ss)


@dataclass(frozen=True)
class NullDistribution:
    """
    Permutation values of one statistic for one module.

    ``values[i]`` is the statistic for permutation index ``i``; None where
    the pseudo-module's statistic was NA.
    """

    module: str
    statistic: str
    values: tuple[float | None, ...]

    @property
    def n_permutations(self) -> int:
        return len(self.values)

    @property
    def valid_values(self) -> np.ndarray:
        return np.array([v for v in self.values if v is not None], dtype=np.float64)

    @property
    def n_valid(self) -> int:
        return sum(v is not None for v in self.values)

    @property
    def mean(self) -> float | None:
        valid = self.valid_values
        return float(valid.mean()) if valid.size else None

    @property
    def std(self) -> float | None:
        """Sample standard deviation (ddof=1); None with fewer than 2 valid values."""
        valid = self.valid_values
        return float(valid.std(ddof=1)) if valid.size >= 2 else None


class NullDistributionBuilder:
    """
    Append-by-index storage for one module's null distributions.

    Slots are addressed by permutation index, so units may complete in any
    order. :meth:`freeze` returns the immutable distributions once every
    slot is filled.
    """

    def __init__(self, module: str, statistics: Iterable[str], n_permutations: int):
        self.module = module
        self.statistics = tuple(statistics)
        self.n_permutations = n_permutations
        self._slots: dict[str, list[float | None]] = {
            name: [None] * n_permutations for name in self.statistics
        }
        self._filled = np.zeros(n_permutations, dtype=bool)

    def record(self, index: int, values: Mapping[str, float | None]) -> None:
        if self._filled[index]:
            raise ValueError(f"Permutation {index} of module {self.module!r} recorded twice")
        for name in self.statistics:
            self._slots[name][index] = values.get(name)
        self._filled[index] = True

    @property
    def complete(self) -> bool:
        return bool(self._filled.all())

    def freeze(self) -> dict[str, NullDistribution]:
        if not self.complete:
            missing = int((~self._filled).sum())
            raise ValueError(f"Module {self.module!r}: {missing} permutations never recorded")
        return {
            name: NullDistribution(self.module, name, tuple(slot))
            for name, slot in self._slots.items()
        }


@dataclass(frozen=True)
class NullRequest:
    """A module whose null distribution is requested."""

    module: str
    module_index: int
    module_size: int


@dataclass
class _Unit:
    request: NullRequest
    start: int
    stop: int
    builder: NullDistributionBuilder = field(repr=False)


class PermutationEngine:
    """
    Builds null distributions of NetworkStatistics on random pseudo-modules.

    Args:
        statistics: Statistic calculator shared with the observed computation
        n_workers: Worker threads (1 runs in the calling thread)
        batch_size: Permutations per unit of work; cancellation is checked
            between batches
        min_permutations: Hard floor; fewer permutations is a configuration error
        recommended_permutations: Runs below this succeed but are low-confidence
        show_progress: Show a tqdm progress bar over units
    """

    def __init__(
        self,
        statistics: NetworkStatistics,
        n_workers: int = 1,
        batch_size: int = 25,
        min_permutations: int = 10,
        recommended_permutations: int = 100,
        show_progress: bool = False,
    ):
        if n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {n_workers}")
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")
        self.statistics = statistics
        self.n_workers = n_workers
        self.batch_size = batch_size
        self.min_permutations = min_permutations
        self.recommended_permutations = recommended_permutations
        self.show_progress = show_progress

    def check_permutations(self, n_permutations: int) -> bool:
        """
        Validate a permutation count.

        Returns:
            True if the count is below the recommended floor (low confidence)

        Raises:
            ConfigurationError: If the count is below the hard floor
        """
        if n_permutations < self.min_permutations:
            raise ConfigurationError(
                f"n_permutations={n_permutations} is below the minimum of "
                f"{self.min_permutations}; the null distribution would be meaningless"
            )
        if n_permutations < self.recommended_permutations:
            logger.warning(
                f"n_permutations={n_permutations} is below the recommended "
                f"{self.recommended_permutations}; Z-scores are low-confidence"
            )
            return True
        return False

    def generate_null(
        self,
        query: PreparedNetwork,
        module: str,
        module_size: int,
        n_permutations: int,
        seed: int,
        module_index: int = 0,
        reference: PreparedNetwork | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, NullDistribution]:
        """Null distribution of every statistic for a single module."""
        self.check_permutations(n_permutations)
        request = NullRequest(module, module_index, module_size)
        nulls = self.generate_nulls(
            query, [request], n_permutations, seed,
            reference=reference, cancel_token=cancel_token,
        )
        return nulls[module]

    def generate_nulls(
        self,
        query: PreparedNetwork,
        requests: list[NullRequest],
        n_permutations: int,
        seed: int,
        reference: PreparedNetwork | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, dict[str, NullDistribution]]:
        """
        Null distributions for several modules on one worker pool.

        Args:
            query: Prepared query dataset (source of the feature pool)
            requests: Modules with their stable indices and sizes
            n_permutations: Permutations per module
            seed: Master seed (non-negative integer)
            reference: Prepared reference; enables cross-dataset statistics
            cancel_token: Checked before each batch

        Returns:
            module → statistic → NullDistribution

        Raises:
            ConfigurationError: Invalid permutation count, seed or module size
            PreservationCancelled: If the token is set during the run
        """
        if n_permutations < self.min_permutations:
            raise ConfigurationError(
                f"n_permutations={n_permutations} is below the minimum of {self.min_permutations}"
            )
        if seed is None or int(seed) < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {seed!r}")
        seed = int(seed)

        for request in requests:
            if not 1 <= request.module_size <= query.n_features:
                raise ConfigurationError(
                    f"Module {request.module!r}: size {request.module_size} cannot be drawn "
                    f"from a pool of {query.n_features} features"
                )

        names = STATISTICS + (CROSS_STATISTICS if reference is not None else ())
        ref_lookup = None
        if reference is not None:
            ref_lookup = reference.feature_ids.get_indexer(query.feature_ids)

        builders = {
            r.module: NullDistributionBuilder(r.module, names, n_permutations)
            for r in requests
        }
        units = [
            _Unit(r, start, min(start + self.batch_size, n_permutations), builders[r.module])
            for r in requests
            for start in range(0, n_permutations, self.batch_size)
        ]

        logger.info(
            f"Permutation null: {len(requests)} modules × {n_permutations} permutations "
            f"({len(units)} batches, {self.n_workers} workers)"
        )

        def run_unit(unit: _Unit) -> None:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(f"module {unit.request.module!r}")
            for index in range(unit.start, unit.stop):
                unit.builder.record(
                    index,
                    self._permutation_values(query, reference, ref_lookup, unit.request, seed, index),
                )

        progress = tqdm(
            total=len(units), desc="Permutations", unit="batch",
            disable=not self.show_progress,
        )
        try:
            if self.n_workers == 1:
                for unit in units:
                    run_unit(unit)
                    progress.update(1)
            else:
                with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                    futures = [executor.submit(run_unit, unit) for unit in units]
                    try:
                        for future in as_completed(futures):
                            future.result()
                            progress.update(1)
                    except BaseException:
                        for future in futures:
                            future.cancel()
                        raise
        finally:
            progress.close()

        return {module: builder.freeze() for module, builder in builders.items()}

    def _permutation_values(
        self,
        query: PreparedNetwork,
        reference: PreparedNetwork | None,
        ref_lookup: np.ndarray | None,
        request: NullRequest,
        seed: int,
        index: int,
    ) -> dict[str, float | None]:
        rng = permutation_rng(seed, request.module_index, index)
        sample = np.sort(rng.choice(query.n_features, size=request.module_size, replace=False))

        values = self.statistics.compute_feature_set(query, sample, request.module).to_dict()
        if reference is not None:
            mapped = ref_lookup[sample]
            shared = mapped >= 0
            values.update(
                self.statistics.cross_stats(reference, query, mapped[shared], sample[shared])
            )
        return values
