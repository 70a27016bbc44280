"""
Scheduling value types shared by the scheduler, selector and store.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta


@dataclass(frozen=True)
class ScheduleState:
    """Spaced repetition state attached to a solved-problem record."""

    review_count: int = 0
    ease_factor: float = 2.5
    interval: int = 0  # Days between the previous review and the next
    next_review_date: datetime | None = None
    last_reviewed_at: datetime | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.next_review_date is not None

    @classmethod
    def on_solve(
        cls,
        solved_at: datetime,
        initial_ease: float = 2.5,
        grace: timedelta = timedelta(days=1),
    ) -> ScheduleState:
        """
        State for a freshly solved problem.

        The first review lands one grace period after solving, never the
        same day.
        """
        return cls(
            review_count=0,
            ease_factor=initial_ease,
            interval=0,
            next_review_date=solved_at + grace,
            last_reviewed_at=None,
        )

    def with_result(self, result: ScheduleResult, reviewed_at: datetime) -> ScheduleState:
        """Fold a scheduler result into this state (the caller's half of a review)."""
        return replace(
            self,
            review_count=self.review_count + 1,
            ease_factor=result.ease_factor,
            interval=result.interval,
            next_review_date=result.next_review_date,
            last_reviewed_at=reviewed_at,
        )


@dataclass(frozen=True)
class ReviewEvent:
    """Input to the scheduler: prior state plus the user's 1-5 recall rating."""

    prior_review_count: int
    prior_ease_factor: float
    prior_interval: int
    recall_rating: int

    @classmethod
    def from_state(cls, state: ScheduleState, recall_rating: int) -> ReviewEvent:
        return cls(
            prior_review_count=state.review_count,
            prior_ease_factor=state.ease_factor,
            prior_interval=state.interval,
            recall_rating=recall_rating,
        )


@dataclass(frozen=True)
class ScheduleResult:
    """Output of the scheduler."""

    interval: int
    ease_factor: float
    next_review_date: datetime
