"""
SM-2 Review Scheduler.

Maps a review event (prior state + recall rating) to the next
interval, ease factor and review date. Pure: no I/O, no clock reads,
no mutable state.

Recall Rating Scale:
1 - Forgot the solution
2 - Hard, mostly forgotten
3 - Okay, recalled with real difficulty
4 - Good, recalled with some hesitation
5 - Perfect recall

Ratings are shifted to a zero-based quality (rating - 1) before the
ease update.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from loguru import logger

from .errors import InvalidArgument
from .models import ReviewEvent, ScheduleResult, ScheduleState

if TYPE_CHECKING:
    from config import Settings

MIN_RATING = 1
MAX_RATING = 5
MIN_INTERVAL = 1

# =============================================================================
# Policy
# =============================================================================


@dataclass(frozen=True)
class SchedulerPolicy:
    """Tunable constants of the SM-2 variant."""

    initial_ease_factor: float = 2.5
    minimum_ease_factor: float = 1.3
    first_interval: int = 1  # Days after the first review
    second_interval: int = 6  # Days after the second review
    passing_quality: int = 3  # quality below this resets the interval
    perfect_recall_bonus: float = 1.3  # Extra multiplier for rating 5
    max_interval: int = 365

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerPolicy:
        return cls(**settings.get_scheduler_config())


DEFAULT_POLICY = SchedulerPolicy()


# =============================================================================
# Core Algorithm
# =============================================================================


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _validate(event: ReviewEvent) -> None:
    rating = event.recall_rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidArgument(f"Recall rating must be an integer, got {rating!r}")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidArgument(f"Recall rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")
    if not math.isfinite(event.prior_ease_factor):
        raise InvalidArgument(f"Prior ease factor must be finite, got {event.prior_ease_factor}")
    if not math.isfinite(event.prior_interval) or event.prior_interval < 0:
        raise InvalidArgument(f"Prior interval must be a non-negative number, got {event.prior_interval}")
    if event.prior_review_count < 0:
        raise InvalidArgument(f"Prior review count must be >= 0, got {event.prior_review_count}")


def next_ease_factor(prior_ease: float, quality: int, minimum: float = 1.3) -> float:
    """
    SM-2 ease update.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at minimum.
    """
    delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    return max(minimum, prior_ease + delta)


def schedule_event(
    event: ReviewEvent,
    now: datetime,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> ScheduleResult:
    """
    Compute the next schedule for a single review event.

    Args:
        event: Prior state and the 1-5 recall rating
        now: Review timestamp; the next review is measured from here
        policy: Scheduling constants

    Returns:
        ScheduleResult with interval, ease factor and next review date

    Raises:
        InvalidArgument: rating outside 1-5 or non-finite prior values
    """
    _validate(event)

    rating = event.recall_rating
    quality = rating - 1
    new_ease = next_ease_factor(event.prior_ease_factor, quality, policy.minimum_ease_factor)

    if event.prior_review_count == 0:
        interval = policy.first_interval
    elif event.prior_review_count == 1:
        interval = policy.second_interval
    elif quality < policy.passing_quality:
        # Rating 3 lands here too: passing for streaks, a reset for spacing
        interval = policy.first_interval
    else:
        interval = _round_half_up(event.prior_interval * new_ease)

    # Raw-rating overrides apply on top of every branch above, including
    # the first/second review ones.
    if rating == MAX_RATING:
        interval = _round_half_up(interval * policy.perfect_recall_bonus)
    elif rating == MIN_RATING:
        interval = policy.first_interval

    interval = max(MIN_INTERVAL, min(interval, policy.max_interval))

    logger.debug(
        f"SM-2: count={event.prior_review_count} rating={rating} "
        f"ease {event.prior_ease_factor:.2f}->{new_ease:.2f} interval={interval}d"
    )

    return ScheduleResult(
        interval=interval,
        ease_factor=new_ease,
        next_review_date=now + timedelta(days=interval),
    )


def compute_next_schedule(
    prior_state: ScheduleState,
    recall_rating: int,
    now: datetime,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> ScheduleResult:
    """
    Entry point of the scheduler.

    The caller is responsible for incrementing review_count and setting
    last_reviewed_at (see ScheduleState.with_result).
    """
    return schedule_event(ReviewEvent.from_state(prior_state, recall_rating), now, policy)


# =============================================================================
# Service Wrapper
# =============================================================================


class SM2Scheduler:
    """
    Value-type facade over compute_next_schedule.

    Holds nothing but an immutable policy, so one instance can be shared
    freely across sessions and threads.
    """

    __slots__ = ("policy",)

    def __init__(self, policy: SchedulerPolicy | None = None):
        self.policy = policy or DEFAULT_POLICY

    def next_schedule(self, state: ScheduleState, rating: int, now: datetime) -> ScheduleResult:
        return compute_next_schedule(state, rating, now, self.policy)

    def review(self, state: ScheduleState, rating: int, now: datetime) -> ScheduleState:
        """Compute and fold the result into a new ScheduleState."""
        return state.with_result(self.next_schedule(state, rating, now), now)

    def initial_state(self, solved_at: datetime, grace: timedelta = timedelta(days=1)) -> ScheduleState:
        return ScheduleState.on_solve(solved_at, self.policy.initial_ease_factor, grace)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, SM2Scheduler) and other.policy == self.policy

    def __hash__(self) -> int:
        return hash(self.policy)

    def __repr__(self) -> str:
        return f"SM2Scheduler({self.policy!r})"
