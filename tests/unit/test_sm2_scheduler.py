"""
Unit tests for the SM-2 review scheduler.

Covers the interval branches, the raw-rating overrides layered on top of
them, the ease floor, the interval cap and input validation.

Run: pytest tests/unit/test_sm2_scheduler.py -v
"""

import itertools
import math
from datetime import datetime, timedelta

import pytest

from src.scheduling import (
    InvalidArgument,
    SchedulerPolicy,
    ScheduleState,
    SM2Scheduler,
    compute_next_schedule,
)
from src.scheduling.sm2 import next_ease_factor

NOW = datetime(2024, 3, 15, 12, 0, 0)


def state(review_count=0, ease_factor=2.5, interval=0):
    return ScheduleState(review_count=review_count, ease_factor=ease_factor, interval=interval)


class TestEaseFactor:
    """Test the SM-2 ease update."""

    @pytest.mark.parametrize(
        "rating,expected",
        [
            (5, 2.5),
            (4, 2.36),
            (3, 2.18),
            (2, 1.96),
            (1, 1.7),
        ],
    )
    def test_ease_delta_by_rating(self, rating, expected):
        """Ease moves by the SM-2 delta of the zero-based quality."""
        result = compute_next_schedule(state(2, 2.5, 10), rating, NOW)
        assert result.ease_factor == pytest.approx(expected)

    def test_ease_floor(self):
        """Ease never drops below 1.3."""
        result = compute_next_schedule(state(4, 1.3, 3), 1, NOW)
        assert result.ease_factor == pytest.approx(1.3)

    def test_ease_floor_from_just_above(self):
        result = compute_next_schedule(state(4, 1.4, 3), 2, NOW)
        assert result.ease_factor == pytest.approx(1.3)

    def test_no_ease_ceiling(self):
        """Perfect recall keeps a high ease where it is; nothing caps it."""
        result = compute_next_schedule(state(4, 4.0, 3), 5, NOW)
        assert result.ease_factor == pytest.approx(4.0)

    def test_next_ease_factor_helper(self):
        assert next_ease_factor(2.5, 3) == pytest.approx(2.36)
        assert next_ease_factor(1.3, 0) == pytest.approx(1.3)


class TestIntervals:
    """Test interval branches and rating overrides."""

    # ========================================
    # First / Second Review
    # ========================================

    def test_first_review_rating_3(self):
        assert compute_next_schedule(state(0), 3, NOW).interval == 1

    def test_first_review_rating_5_stays_one_day(self):
        """The perfect-recall bonus still applies: round(1 * 1.3) == 1."""
        assert compute_next_schedule(state(0), 5, NOW).interval == 1

    def test_second_review_rating_4(self):
        assert compute_next_schedule(state(1, 2.5, 1), 4, NOW).interval == 6

    def test_second_review_rating_3_still_six(self):
        """The second-review branch wins over the low-quality reset."""
        assert compute_next_schedule(state(1, 2.5, 1), 3, NOW).interval == 6

    def test_second_review_rating_5_gets_bonus(self):
        """round(6 * 1.3) == 8."""
        assert compute_next_schedule(state(1, 2.5, 1), 5, NOW).interval == 8

    def test_second_review_rating_1_resets(self):
        assert compute_next_schedule(state(1, 2.5, 1), 1, NOW).interval == 1

    # ========================================
    # Mature Reviews
    # ========================================

    def test_third_review_good_recall(self):
        """prior_interval=10, ease=2.5, rating=4 -> ease 2.36, interval round(23.6) = 24."""
        result = compute_next_schedule(state(2, 2.5, 10), 4, NOW)
        assert result.ease_factor == pytest.approx(2.36)
        assert result.interval == 24

    def test_perfect_recall_multiplies(self):
        """round(4 * 2.5) = 10, then round(10 * 1.3) = 13."""
        assert compute_next_schedule(state(3, 2.5, 4), 5, NOW).interval == 13

    @pytest.mark.parametrize("rating", [1, 2, 3])
    def test_low_quality_resets(self, rating):
        """Ratings 1-3 reset a mature interval to one day."""
        assert compute_next_schedule(state(5, 2.5, 40), rating, NOW).interval == 1

    @pytest.mark.parametrize("review_count", [0, 1, 2, 7])
    def test_rating_1_always_one_day(self, review_count):
        assert compute_next_schedule(state(review_count, 2.5, 30), 1, NOW).interval == 1

    def test_rounds_half_up(self):
        """round(2 * 2.36) = round(4.72) = 5 and round(3 * 2.5) = round(7.5) = 8."""
        assert compute_next_schedule(state(2, 2.5, 2), 4, NOW).interval == 5
        # Rating 5 keeps ease at 2.5: 3 * 2.5 = 7.5 -> 8, then round(8 * 1.3) = round(10.4) = 10
        assert compute_next_schedule(state(2, 2.5, 3), 5, NOW).interval == 10

    def test_interval_capped_at_a_year(self):
        result = compute_next_schedule(state(9, 2.5, 300), 4, NOW)
        assert result.interval == 365

    def test_next_review_date_measured_from_now(self):
        result = compute_next_schedule(state(2, 2.5, 10), 4, NOW)
        assert result.next_review_date == NOW + timedelta(days=24)


class TestInvariants:
    """Properties that hold for every valid input."""

    @pytest.mark.parametrize(
        "review_count,ease,interval,rating",
        list(itertools.product([0, 1, 2, 6], [1.3, 1.8, 2.5, 3.4], [0, 1, 6, 90, 365], [1, 2, 3, 4, 5])),
    )
    def test_bounds(self, review_count, ease, interval, rating):
        result = compute_next_schedule(state(review_count, ease, interval), rating, NOW)

        assert result.ease_factor >= 1.3
        assert 1 <= result.interval <= 365
        assert result.next_review_date == NOW + timedelta(days=result.interval)

    def test_pure(self):
        """Same input, same output; the prior state is untouched."""
        prior = state(3, 2.2, 12)
        first = compute_next_schedule(prior, 4, NOW)
        second = compute_next_schedule(prior, 4, NOW)
        assert first == second
        assert prior == state(3, 2.2, 12)


class TestValidation:
    """Test InvalidArgument on malformed input."""

    @pytest.mark.parametrize("rating", [0, 6, -1, 10])
    def test_rating_out_of_range(self, rating):
        with pytest.raises(InvalidArgument):
            compute_next_schedule(state(), rating, NOW)

    @pytest.mark.parametrize("rating", [3.0, "4", None, True])
    def test_rating_not_an_integer(self, rating):
        with pytest.raises(InvalidArgument):
            compute_next_schedule(state(), rating, NOW)

    @pytest.mark.parametrize("ease", [math.nan, math.inf, -math.inf])
    def test_non_finite_ease(self, ease):
        with pytest.raises(InvalidArgument):
            compute_next_schedule(state(2, ease, 5), 4, NOW)

    @pytest.mark.parametrize("interval", [math.nan, math.inf, -1])
    def test_bad_prior_interval(self, interval):
        with pytest.raises(InvalidArgument):
            compute_next_schedule(state(2, 2.5, interval), 4, NOW)

    def test_negative_review_count(self):
        with pytest.raises(InvalidArgument):
            compute_next_schedule(state(-1, 2.5, 5), 4, NOW)

    def test_invalid_argument_is_value_error(self):
        with pytest.raises(ValueError):
            compute_next_schedule(state(), 0, NOW)


class TestSM2Scheduler:
    """Test the scheduler service wrapper."""

    def test_review_folds_result(self):
        scheduler = SM2Scheduler()
        reviewed = scheduler.review(state(2, 2.5, 10), 4, NOW)

        assert reviewed.review_count == 3
        assert reviewed.interval == 24
        assert reviewed.last_reviewed_at == NOW
        assert reviewed.next_review_date == reviewed.last_reviewed_at + timedelta(days=reviewed.interval)

    def test_initial_state_after_grace(self):
        initial = SM2Scheduler().initial_state(NOW, grace=timedelta(hours=24))

        assert initial.review_count == 0
        assert initial.ease_factor == 2.5
        assert initial.next_review_date == NOW + timedelta(days=1)
        assert initial.is_scheduled

    def test_custom_policy(self):
        policy = SchedulerPolicy(second_interval=4, max_interval=30)
        scheduler = SM2Scheduler(policy)

        assert scheduler.next_schedule(state(1, 2.5, 1), 4, NOW).interval == 4
        assert scheduler.next_schedule(state(5, 2.5, 28), 4, NOW).interval == 30

    def test_value_semantics(self):
        assert SM2Scheduler() == SM2Scheduler(SchedulerPolicy())
        assert SM2Scheduler() != SM2Scheduler(SchedulerPolicy(max_interval=100))
        assert len({SM2Scheduler(), SM2Scheduler()}) == 1

    def test_policy_from_settings(self, monkeypatch):
        from config import get_settings

        monkeypatch.setenv("MAX_INTERVAL_DAYS", "120")
        monkeypatch.setenv("SECOND_INTERVAL_DAYS", "5")
        policy = SchedulerPolicy.from_settings(get_settings())

        assert policy.max_interval == 120
        assert policy.second_interval == 5
        assert policy.minimum_ease_factor == 1.3
