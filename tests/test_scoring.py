"""Tests for PreservationScorer Z-scores, summaries and ranks."""

import math

import pytest

from modpres.core.errors import ConfigurationError
from modpres.stats.permutation import NullDistribution
from modpres.stats.scoring import (
    PreservationResult,
    PreservationScorer,
    SummaryGroup,
    SummaryPolicy,
)


def _result(statistic, z):
    return PreservationResult("blue", statistic, None, None, None, None, z)


class TestScore:
    """Tests for PreservationScorer.score()."""

    def test_z_from_null_moments(self):
        """Z is (observed - mean) / std of the null."""
        null = NullDistribution("blue", "density", (1.0, 2.0, 3.0, 4.0, 5.0))

        result = PreservationScorer().score(0.9, 5.0, null)

        assert result.z == pytest.approx(2.0 / math.sqrt(2.5))
        assert result.null_mean == pytest.approx(3.0)
        assert result.observed_ref == 0.9
        assert result.n_null == 5
        assert not result.is_na

    def test_zero_variance_null_is_na(self):
        """A null with zero spread gives NA."""
        null = NullDistribution("blue", "density", (2.0, 2.0, 2.0))
        assert PreservationScorer().score(None, 3.0, null).z is None

    def test_na_observed_is_na(self):
        """An NA observation gives NA."""
        null = NullDistribution("blue", "density", (1.0, 2.0, 3.0))
        result = PreservationScorer().score(None, None, null)
        assert result.is_na

    def test_insufficient_null_is_na(self):
        """A null with under two valid draws gives NA."""
        null = NullDistribution("blue", "density", (None, None, 1.0))
        assert PreservationScorer().score(None, 3.0, null).z is None

    def test_score_module_covers_every_null(self):
        """Every statistic with a null is scored."""
        nulls = {
            "density": NullDistribution("blue", "density", (0.1, 0.2, 0.3)),
            "connectivity": NullDistribution("blue", "connectivity", (1.0, 2.0, 3.0)),
        }
        results = PreservationScorer().score_module(
            {"density": 0.5}, {"density": 0.6, "connectivity": 2.0}, nulls
        )
        assert set(results) == {"density", "connectivity"}
        assert results["connectivity"].z == pytest.approx(0.0)
        assert results["connectivity"].observed_ref is None


class TestSummary:
    """Tests for summary composites under the built-in policies."""

    def test_standard_summary_is_mean(self):
        """The standard summary is the mean of its groups."""
        results = {
            "density": _result("density", 4.0),
            "connectivity": _result("connectivity", 6.0),
            "separability": _result("separability", 2.0),
        }
        scorer = PreservationScorer()

        assert scorer.group_scores(results) == {
            "density": 4.0, "connectivity": 6.0, "separability": 2.0,
        }
        assert scorer.summarize(results) == pytest.approx(4.0)

    def test_strict_na_propagates(self):
        """Under the strict policy any NA component makes the summary NA."""
        results = {
            "density": _result("density", 4.0),
            "connectivity": _result("connectivity", 6.0),
            "separability": _result("separability", None),
        }
        assert PreservationScorer().summarize(results) is None

    def test_available_na_policy(self):
        """The available policy averages the non-NA components."""
        results = {
            "density": _result("density", 4.0),
            "connectivity": _result("connectivity", 6.0),
            "separability": _result("separability", None),
        }
        scorer = PreservationScorer(SummaryPolicy.from_name("standard", na_policy="available"))
        assert scorer.summarize(results) == pytest.approx(5.0)

    def test_missing_component_counts_as_na(self):
        """An absent component counts as NA."""
        results = {"density": _result("density", 4.0)}
        assert PreservationScorer().summarize(results) is None

    def test_wgcna_policy_medians(self):
        """Each wgcna group score is the median of its statistics."""
        z = {
            "mean_cor": 1.0, "density": 2.0, "prop_var_expl": 3.0, "mean_kme": 10.0,
            "cor_kim": 4.0, "cor_kme": 5.0, "cor_cor": 6.0,
        }
        results = {name: _result(name, value) for name, value in z.items()}
        scorer = PreservationScorer(SummaryPolicy.from_name("wgcna"))

        groups = scorer.group_scores(results)

        assert groups["density"] == pytest.approx(2.5)
        assert groups["connectivity"] == pytest.approx(5.0)
        assert scorer.summarize(results) == pytest.approx(3.75)

    def test_custom_policy(self):
        """Custom groups and aggregations are supported."""
        policy = SummaryPolicy(
            "custom", (SummaryGroup("topology", ("mean_cor", "cor_cor"), "median"),)
        )
        results = {"mean_cor": _result("mean_cor", 1.0), "cor_cor": _result("cor_cor", 3.0)}
        assert PreservationScorer(policy).summarize(results) == pytest.approx(2.0)

    def test_unknown_policy(self):
        """Unknown policy names are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown summary policy"):
            SummaryPolicy.from_name("zsummary")

    def test_group_with_unknown_statistic(self):
        """Groups may only name known statistics."""
        with pytest.raises(ConfigurationError, match="unknown statistics"):
            SummaryGroup("bad", ("density", "modularity"))

    def test_reserved_group_name(self):
        """The name summary is reserved."""
        with pytest.raises(ConfigurationError, match="reserved"):
            SummaryPolicy("bad", (SummaryGroup("summary", ("density",)),))


class TestRank:
    """Tests for null-free rank scores."""

    def test_best_module_ranks_first(self):
        """The most preserved module gets rank 1."""
        observed = {
            "blue": {"density": 0.5, "connectivity": 3.0, "separability": 0.4},
            "brown": {"density": 0.2, "connectivity": 1.0, "separability": 0.1},
            "green": {"density": 0.3, "connectivity": 2.0, "separability": 0.2},
        }

        ranks = PreservationScorer().rank(observed)

        assert ranks["blue"]["summary"] == 1.0
        assert ranks["green"]["summary"] == 2.0
        assert ranks["brown"]["summary"] == 3.0
        assert ranks["blue"]["density"] == 1.0

    def test_ties_get_average_rank(self):
        """Tied modules share the average rank."""
        observed = {
            "a": {"density": 0.5, "connectivity": 1.0, "separability": 0.1},
            "b": {"density": 0.5, "connectivity": 2.0, "separability": 0.2},
        }
        ranks = PreservationScorer().rank(observed)
        assert ranks["a"]["density"] == 1.5
        assert ranks["b"]["density"] == 1.5

    def test_na_statistic_gives_na_rank(self):
        """An NA statistic gives an NA rank."""
        observed = {
            "a": {"density": 0.5, "connectivity": 1.0, "separability": None},
            "b": {"density": 0.4, "connectivity": 2.0, "separability": 0.2},
        }
        ranks = PreservationScorer().rank(observed)

        assert ranks["a"]["separability"] is None
        assert ranks["a"]["summary"] is None
        assert ranks["b"]["separability"] == 1.0
