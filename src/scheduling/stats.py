"""
Review history statistics.

Streaks are folds over the review sequence, computed on demand rather
than stored.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from itertools import groupby, takewhile
from typing import Protocol


class RatedReview(Protocol):
    rating: int
    reviewed_at: datetime


@dataclass(frozen=True)
class ReviewStats:
    total_reviews: int = 0
    average_rating: float = 0.0
    success_rate: float = 0.0  # Fraction of passing reviews, 0.0-1.0
    streak: int = 0
    best_streak: int = 0

    @property
    def success_percent(self) -> float:
        return round(self.success_rate * 100, 1)


def _most_recent_first(reviews: Iterable[RatedReview]) -> list[RatedReview]:
    return sorted(reviews, key=lambda r: r.reviewed_at, reverse=True)


def current_streak(reviews: Iterable[RatedReview], pass_rating: int = 3) -> int:
    """Consecutive passing reviews counting back from the most recent one."""
    passing = takewhile(lambda r: r.rating >= pass_rating, _most_recent_first(reviews))
    return sum(1 for _ in passing)


def best_streak(reviews: Iterable[RatedReview], pass_rating: int = 3) -> int:
    """Longest run of passing reviews anywhere in the history."""
    ordered = sorted(reviews, key=lambda r: r.reviewed_at)
    runs = (
        sum(1 for _ in run)
        for passed, run in groupby(ordered, key=lambda r: r.rating >= pass_rating)
        if passed
    )
    return max(runs, default=0)


def review_stats(reviews: Iterable[RatedReview], pass_rating: int = 3) -> ReviewStats:
    history = list(reviews)
    if not history:
        return ReviewStats()

    total = len(history)
    passed = sum(1 for r in history if r.rating >= pass_rating)
    return ReviewStats(
        total_reviews=total,
        average_rating=round(sum(r.rating for r in history) / total, 1),
        success_rate=passed / total,
        streak=current_streak(history, pass_rating),
        best_streak=best_streak(history, pass_rating),
    )
