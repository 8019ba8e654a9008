"""Tests for the competitive permutation null."""

import logging

import numpy as np
import pytest

from conftest import generate_module_expression

from modpres.core.cancellation import CancellationToken
from modpres.core.errors import ConfigurationError, PreservationCancelled
from modpres.stats.adjacency import AdjacencyTransform
from modpres.stats.network_statistics import ALL_STATISTICS, STATISTICS, NetworkStatistics
from modpres.stats.permutation import (
    NullDistribution,
    NullDistributionBuilder,
    NullRequest,
    PermutationEngine,
    permutation_rng,
)


@pytest.fixture
def prepared_pair(preserved_pair):
    ref_matrix, _, query_matrix, _ = preserved_pair
    stats = NetworkStatistics()
    return stats, stats.prepare(ref_matrix), stats.prepare(query_matrix)


class TestPermutationRng:
    """Tests for per-permutation seed derivation."""

    def test_same_key_same_stream(self):
        """Equal (seed, module, permutation) keys give equal streams."""
        a = permutation_rng(123, 2, 7).random(5)
        b = permutation_rng(123, 2, 7).random(5)
        np.testing.assert_array_equal(a, b)

    def test_different_keys_differ(self):
        """Different keys give different streams."""
        base = permutation_rng(123, 0, 0).random(5)
        assert not np.array_equal(base, permutation_rng(123, 0, 1).random(5))
        assert not np.array_equal(base, permutation_rng(123, 1, 0).random(5))
        assert not np.array_equal(base, permutation_rng(124, 0, 0).random(5))


class TestNullDistribution:
    """Tests for NullDistribution moments and the builder."""

    def test_moments_skip_na(self):
        """Null moments ignore NA draws."""
        null = NullDistribution("blue", "density", (1.0, None, 3.0, 5.0))

        assert null.n_permutations == 4
        assert null.n_valid == 3
        assert null.mean == pytest.approx(3.0)
        assert null.std == pytest.approx(2.0)  # ddof=1

    def test_single_valid_value_has_no_std(self):
        """One valid draw has a mean but no std."""
        null = NullDistribution("blue", "density", (None, 2.0))
        assert null.mean == pytest.approx(2.0)
        assert null.std is None

    def test_all_na(self):
        """An all-NA null has no moments."""
        null = NullDistribution("blue", "density", (None, None))
        assert null.mean is None
        assert null.std is None

    def test_builder_fills_out_of_order(self):
        """Draws recorded out of order land in index order."""
        builder = NullDistributionBuilder("blue", ("density",), 3)
        for index in (2, 0, 1):
            builder.record(index, {"density": float(index)})

        nulls = builder.freeze()

        assert nulls["density"].values == (0.0, 1.0, 2.0)

    def test_builder_rejects_double_record(self):
        """A permutation index can be recorded once."""
        builder = NullDistributionBuilder("blue", ("density",), 2)
        builder.record(0, {"density": 1.0})
        with pytest.raises(ValueError, match="recorded twice"):
            builder.record(0, {"density": 2.0})

    def test_builder_incomplete_freeze(self):
        """Freezing with missing draws fails."""
        builder = NullDistributionBuilder("blue", ("density",), 2)
        builder.record(1, {"density": 1.0})
        assert not builder.complete
        with pytest.raises(ValueError, match="never recorded"):
            builder.freeze()


class TestPermutationEngine:
    """Tests for PermutationEngine.generate_null() / generate_nulls()."""

    def test_null_shape_and_range(self, prepared_pair):
        """The null holds every statistic with one draw per permutation."""
        stats, ref, query = prepared_pair
        engine = PermutationEngine(stats)

        nulls = engine.generate_null(query, "blue", 10, n_permutations=40, seed=1, reference=ref)

        assert set(nulls) == set(ALL_STATISTICS)
        density = nulls["density"]
        assert density.n_permutations == 40
        assert density.n_valid == 40
        assert np.all((density.valid_values >= 0) & (density.valid_values <= 1))

    def test_single_dataset_null_has_no_cross_statistics(self, prepared_pair):
        """Without a reference only single-dataset statistics are drawn."""
        stats, _, query = prepared_pair
        nulls = PermutationEngine(stats).generate_null(query, "blue", 10, 20, seed=1)
        assert set(nulls) == set(STATISTICS)

    def test_deterministic_across_workers_and_batches(self, prepared_pair):
        """Null values depend only on (seed, module index, permutation index)."""
        stats, ref, query = prepared_pair
        requests = [NullRequest("blue", 0, 10), NullRequest("small", 3, 6)]

        sequential = PermutationEngine(stats, n_workers=1, batch_size=25).generate_nulls(
            query, requests, 30, seed=99, reference=ref
        )
        threaded = PermutationEngine(stats, n_workers=4, batch_size=7).generate_nulls(
            query, requests, 30, seed=99, reference=ref
        )

        for module in ("blue", "small"):
            for name in ALL_STATISTICS:
                assert sequential[module][name].values == threaded[module][name].values

    def test_seed_changes_null(self, prepared_pair):
        """A different seed changes the null."""
        stats, _, query = prepared_pair
        engine = PermutationEngine(stats)

        a = engine.generate_null(query, "blue", 10, 20, seed=1)
        b = engine.generate_null(query, "blue", 10, 20, seed=2)

        assert a["density"].values != b["density"].values

    def test_module_index_changes_null(self, prepared_pair):
        """A different module index changes the null."""
        stats, _, query = prepared_pair
        engine = PermutationEngine(stats)

        a = engine.generate_null(query, "blue", 10, 20, seed=1, module_index=0)
        b = engine.generate_null(query, "blue", 10, 20, seed=1, module_index=1)

        assert a["density"].values != b["density"].values

    def test_below_minimum_permutations(self, prepared_pair):
        """Too few permutations are rejected."""
        stats, _, query = prepared_pair
        engine = PermutationEngine(stats, min_permutations=10)

        with pytest.raises(ConfigurationError, match="below the minimum"):
            engine.generate_null(query, "blue", 10, 5, seed=1)

    def test_low_confidence_warning(self, prepared_pair, caplog):
        """Fewer than recommended permutations warn."""
        stats, _, _ = prepared_pair
        engine = PermutationEngine(stats, recommended_permutations=100)

        with caplog.at_level(logging.WARNING, logger="modpres.stats.permutation"):
            assert engine.check_permutations(50) is True
        assert "low-confidence" in caplog.text
        assert engine.check_permutations(100) is False

    def test_invalid_seed(self, prepared_pair):
        """Negative seeds are rejected."""
        stats, _, query = prepared_pair
        with pytest.raises(ConfigurationError, match="seed"):
            PermutationEngine(stats).generate_null(query, "blue", 10, 20, seed=-1)

    def test_module_larger_than_pool(self, prepared_pair):
        """A module larger than the feature pool is rejected."""
        stats, _, query = prepared_pair
        with pytest.raises(ConfigurationError, match="cannot be drawn"):
            PermutationEngine(stats).generate_null(query, "blue", query.n_features + 1, 20, seed=1)

    def test_invalid_worker_count(self, prepared_pair):
        """Worker count must be positive."""
        stats, _, _ = prepared_pair
        with pytest.raises(ConfigurationError, match="n_workers"):
            PermutationEngine(stats, n_workers=0)

    def test_cancel_before_start(self, prepared_pair):
        """A cancelled token stops the run before any batch."""
        stats, _, query = prepared_pair
        token = CancellationToken()
        token.cancel()

        with pytest.raises(PreservationCancelled):
            PermutationEngine(stats).generate_null(query, "blue", 10, 20, seed=1, cancel_token=token)

    @pytest.mark.parametrize("n_workers", [1, 3])
    def test_cancel_between_batches(self, n_workers):
        """Cancelling mid-run stops the engine at the next batch boundary."""
        matrix, _ = generate_module_expression({"blue": 10}, seed=8)
        token = CancellationToken()
        calls = {"n": 0}

        def cancelling_adjacency(cor):
            calls["n"] += 1
            if calls["n"] >= 20:
                token.cancel()
            return np.abs(cor) ** 6

        stats = NetworkStatistics(adjacency=AdjacencyTransform.custom(cancelling_adjacency))
        engine = PermutationEngine(stats, n_workers=n_workers, batch_size=5)

        with pytest.raises(PreservationCancelled):
            engine.generate_null(
                stats.prepare(matrix), "blue", 10, 400, seed=1, cancel_token=token
            )
