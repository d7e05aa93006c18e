"""
Tallying Engine Tests

Tests for per-application aggregation and the proportional weight export.
"""

import itertools
from decimal import Decimal

import pytest

from rpgf.errors import NoVotesAllocatedError, ValidationError
from rpgf.models.result import ResultMethod
from rpgf.services.tallying import (
    compute_weights,
    distribute_remainder,
    round_half_up,
    tally,
)

BALLOTS = [{"A": 10}, {"A": 5, "B": 3}, {"B": 7}]


# =============================================================================
# Rounding
# =============================================================================


class TestRoundHalfUp:
    """Tests for round_half_up."""

    @pytest.mark.parametrize(
        "value,expected",
        [("2.5", 3), ("3.5", 4), ("2.4999", 2), ("5", 5), ("0.5", 1)],
    )
    def test_halves_round_up(self, value, expected):
        assert round_half_up(Decimal(value)) == expected


# =============================================================================
# Tally
# =============================================================================


class TestTally:
    """Tests for tally."""

    def test_sum(self):
        """Three ballots summed per application."""
        assert tally(["A", "B"], BALLOTS, ResultMethod.SUM) == {"A": 15, "B": 10}

    def test_avg_counts_missing_allocations_as_zero(self):
        """Averages divide by every ballot, not only those voting for the app."""
        assert tally(["A", "B"], BALLOTS, ResultMethod.AVG) == {"A": 5, "B": 3}

    def test_avg_rounds_half_up(self):
        assert tally(["A"], [{"A": 1}, {"A": 2}], ResultMethod.AVG) == {"A": 2}

    def test_median_odd(self):
        assert tally(["A", "B"], BALLOTS, ResultMethod.MEDIAN) == {"A": 5, "B": 3}

    def test_median_even_takes_rounded_mean_of_middles(self):
        ballots = [{"A": 1}, {"A": 2}, {"A": 8}, {"A": 10}]
        # middles 2 and 8
        assert tally(["A"], ballots, ResultMethod.MEDIAN) == {"A": 5}

        ballots = [{"A": 2}, {"A": 3}]
        assert tally(["A"], ballots, ResultMethod.MEDIAN) == {"A": 3}

    def test_no_ballots_yields_zero(self):
        for method in ResultMethod:
            assert tally(["A", "B"], [], method) == {"A": 0, "B": 0}

    def test_votes_for_unlisted_applications_ignored(self):
        """Only the given applications are tallied."""
        assert tally(["A"], BALLOTS, ResultMethod.SUM) == {"A": 15}

    def test_accepts_method_value(self):
        assert tally(["A", "B"], BALLOTS, "sum") == {"A": 15, "B": 10}

    @pytest.mark.parametrize("method", list(ResultMethod))
    def test_permutation_invariant(self, method):
        """Ballot order never changes the result."""
        expected = tally(["A", "B"], BALLOTS, method)
        for ordering in itertools.permutations(BALLOTS):
            assert tally(["A", "B"], list(ordering), method) == expected


# =============================================================================
# Remainder Distribution
# =============================================================================


class TestDistributeRemainder:
    """Tests for distribute_remainder."""

    def test_short_sum_filled_to_total(self):
        """Two groups of 333,333 are topped up to exactly 1,000,000."""
        adjusted = distribute_remainder({"A": 333_333, "B": 333_333}, 1_000_000)
        assert sum(adjusted.values()) == 1_000_000
        assert adjusted == {"A": 500_000, "B": 500_000}

    def test_single_unit_goes_to_largest_group(self):
        adjusted = distribute_remainder({"A": 10, "B": 20, "C": 69}, 100)
        assert adjusted == {"A": 10, "B": 20, "C": 70}

    def test_ties_broken_by_key(self):
        adjusted = distribute_remainder({"B": 33, "A": 33, "C": 33}, 100)
        assert adjusted == {"A": 34, "B": 33, "C": 33}

    def test_excess_removed_without_going_negative(self):
        adjusted = distribute_remainder({"A": 0, "B": 2, "C": 1}, 1)
        assert sum(adjusted.values()) == 1
        assert all(v >= 0 for v in adjusted.values())

    def test_exact_sum_unchanged(self):
        assert distribute_remainder({"A": 60, "B": 40}, 100) == {"A": 60, "B": 40}


# =============================================================================
# Weight Export
# =============================================================================


class TestComputeWeights:
    """Tests for compute_weights."""

    def test_proportional_weights(self):
        weights = compute_weights({"app-1": 70, "app-2": 30}, {"app-1": "acc-1", "app-2": "acc-2"})
        assert weights == {"acc-1": 700_000, "acc-2": 300_000}

    def test_thirds_sum_exactly_to_total(self):
        """Equal thirds round down and the remainder is redistributed."""
        results = {"A": 1, "B": 1, "C": 1}
        grouping = {"A": "acc-a", "B": "acc-b", "C": "acc-c"}

        weights = compute_weights(results, grouping, 1_000_000)

        assert sum(weights.values()) == 1_000_000
        assert weights == {"acc-a": 333_334, "acc-b": 333_333, "acc-c": 333_333}

    def test_applications_of_same_account_grouped(self):
        weights = compute_weights(
            {"app-1": 50, "app-2": 25, "app-3": 25},
            {"app-1": "acc-1", "app-2": "acc-1", "app-3": "acc-2"},
            total=100,
        )
        assert weights == {"acc-1": 75, "acc-2": 25}

    def test_zero_weight_groups_dropped(self):
        weights = compute_weights({"A": 10, "B": 0}, {"A": "acc-a", "B": "acc-b"}, total=100)
        assert weights == {"acc-a": 100}

    def test_no_votes_rejected(self):
        with pytest.raises(NoVotesAllocatedError):
            compute_weights({"A": 0, "B": 0}, {"A": "acc-a", "B": "acc-b"})

    def test_unmapped_application_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_weights({"A": 5, "B": 5}, {"A": "acc-a"})
        assert exc_info.value.details["application_ids"] == ["B"]

    @pytest.mark.parametrize(
        "results",
        [
            {"A": 1, "B": 2, "C": 4},
            {"A": 7, "B": 7, "C": 7, "D": 7, "E": 7, "F": 7},
            {"A": 999_999, "B": 1},
            {"A": 3},
        ],
    )
    def test_total_is_exact(self, results):
        grouping = {app_id: f"acc-{app_id}" for app_id in results}
        weights = compute_weights(results, grouping, 1_000_000)
        assert sum(weights.values()) == 1_000_000
        assert all(w > 0 for w in weights.values())
