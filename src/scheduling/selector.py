"""
Due-Set Selector.

Read-only projections over a user's scheduled items:
- Due query (with a grace period for never-reviewed solves)
- Tiering by calendar-day offset from today
- Priority queue (overdue -> today -> this week)
- Forward-looking load histogram

Nothing here mutates a ScheduleState.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import InvalidArgument

if TYPE_CHECKING:
    from config import Settings

# =============================================================================
# Policy & Types
# =============================================================================


@dataclass(frozen=True)
class SelectorPolicy:
    """Boundaries used by the due query and tiering."""

    solve_grace: timedelta = timedelta(hours=24)
    week_horizon_days: int = 7  # dueThisWeek is (0, week_horizon_days]
    load_horizon_days: int = 14

    @classmethod
    def from_settings(cls, settings: Settings) -> SelectorPolicy:
        cfg = settings.get_selector_config()
        return cls(
            solve_grace=timedelta(hours=cfg["solve_grace_hours"]),
            week_horizon_days=cfg["week_horizon_days"],
            load_horizon_days=cfg["load_horizon_days"],
        )


DEFAULT_POLICY = SelectorPolicy()


class Tier(str, Enum):
    """Priority bucket by day offset from today."""

    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_THIS_WEEK = "due_this_week"
    PLANNED_LATER = "planned_later"


@dataclass(frozen=True)
class ScheduledItem:
    """Minimal view of a solved-problem record the selector needs."""

    item_id: Any
    next_review_date: datetime | None
    solved_at: datetime | None = None
    payload: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TieredItem:
    item: ScheduledItem
    tier: Tier
    day_offset: int

    @property
    def next_review_date(self) -> datetime:
        return self.item.next_review_date


@dataclass(frozen=True)
class DayLoad:
    day: date
    count: int


@dataclass(frozen=True)
class ScheduleClassification:
    """Result of classify_schedule. Tuples keep it hashable and comparable."""

    today: date
    overdue: tuple[TieredItem, ...] = ()
    due_today: tuple[TieredItem, ...] = ()
    due_this_week: tuple[TieredItem, ...] = ()
    planned_later: tuple[TieredItem, ...] = ()
    load_by_day: tuple[DayLoad, ...] = ()

    @property
    def priority_queue(self) -> tuple[TieredItem, ...]:
        return self.overdue + self.due_today + self.due_this_week

    @property
    def all_items(self) -> tuple[TieredItem, ...]:
        return self.priority_queue + self.planned_later

    @property
    def urgent_count(self) -> int:
        return len(self.overdue) + len(self.due_today)

    @property
    def highest_load_day(self) -> DayLoad | None:
        """First day carrying the maximum load within the horizon."""
        if not self.load_by_day:
            return None
        highest = self.load_by_day[0]
        for entry in self.load_by_day[1:]:
            if entry.count > highest.count:
                highest = entry
        return highest

    def tier_counts(self) -> dict[str, int]:
        return {
            Tier.OVERDUE.value: len(self.overdue),
            Tier.DUE_TODAY.value: len(self.due_today),
            Tier.DUE_THIS_WEEK.value: len(self.due_this_week),
            Tier.PLANNED_LATER.value: len(self.planned_later),
        }

    def within_days(self, days: int) -> list[TieredItem]:
        """All scheduled items due no later than `days` from today (overdue included)."""
        return [t for t in self.all_items if t.day_offset <= days]

    def group_by_day(self, items: Iterable[TieredItem] | None = None) -> dict[date, list[TieredItem]]:
        """Group items by calendar date of their next review, earliest first."""
        source = self.all_items if items is None else items
        grouped: dict[date, list[TieredItem]] = {}
        for tiered in sorted(source, key=lambda t: t.day_offset):
            grouped.setdefault(self.today + timedelta(days=tiered.day_offset), []).append(tiered)
        return grouped


# =============================================================================
# Calendar Helpers
# =============================================================================


def _local_date(ts: datetime, now: datetime) -> date:
    """Calendar date of ts as seen from now's timezone."""
    if ts.tzinfo is not None and now.tzinfo is not None:
        return ts.astimezone(now.tzinfo).date()
    return ts.date()


def calendar_days_between(ts: datetime, now: datetime) -> int:
    """Signed number of calendar days from today (now's date) to ts."""
    return (_local_date(ts, now) - now.date()).days


def classify_offset(day_offset: int, policy: SelectorPolicy = DEFAULT_POLICY) -> Tier:
    if day_offset < 0:
        return Tier.OVERDUE
    if day_offset == 0:
        return Tier.DUE_TODAY
    if day_offset <= policy.week_horizon_days:
        return Tier.DUE_THIS_WEEK
    return Tier.PLANNED_LATER


def relative_label(day_offset: int) -> str:
    """Human-readable distance to a review date."""
    if day_offset < 0:
        days = abs(day_offset)
        return f"Overdue by {days} day{'' if days == 1 else 's'}"
    if day_offset == 0:
        return "Today"
    if day_offset == 1:
        return "Tomorrow"
    if day_offset <= 7:
        return f"In {day_offset} days"
    if day_offset <= 30:
        return f"In {math.ceil(day_offset / 7)} weeks"
    return f"In {math.ceil(day_offset / 30)} months"


# =============================================================================
# Due Query
# =============================================================================


def is_due(item: ScheduledItem, now: datetime, policy: SelectorPolicy = DEFAULT_POLICY) -> bool:
    """
    Whether an item should be offered for review at `now`.

    Scheduled items are due once their date has passed. Never-scheduled
    items become eligible one grace period after being solved.
    """
    if item.next_review_date is not None:
        return item.next_review_date <= now
    if item.solved_at is None:
        return False
    return item.solved_at <= now - policy.solve_grace


def _due_sort_key(item: ScheduledItem) -> tuple:
    # Scheduled items by date first, then never-scheduled ones by solve time
    if item.next_review_date is not None:
        return (0, item.next_review_date)
    return (1, item.solved_at)


def select_due(
    items: Iterable[ScheduledItem],
    now: datetime,
    policy: SelectorPolicy = DEFAULT_POLICY,
) -> list[ScheduledItem]:
    """Due items, most overdue first."""
    return sorted((i for i in items if is_due(i, now, policy)), key=_due_sort_key)


# =============================================================================
# Classification
# =============================================================================


def load_histogram(
    items: Iterable[ScheduledItem],
    now: datetime,
    horizon_days: int,
) -> tuple[DayLoad, ...]:
    """Count of reviews landing on each calendar day in [today, today + horizon)."""
    if horizon_days < 0:
        raise InvalidArgument(f"Horizon must be >= 0 days, got {horizon_days}")

    per_day = Counter(
        _local_date(i.next_review_date, now) for i in items if i.next_review_date is not None
    )
    today = now.date()
    return tuple(
        DayLoad(day=day, count=per_day.get(day, 0))
        for day in (today + timedelta(days=k) for k in range(horizon_days))
    )


def classify_schedule(
    items: Iterable[ScheduledItem],
    now: datetime,
    horizon_days: int | None = None,
    policy: SelectorPolicy = DEFAULT_POLICY,
) -> ScheduleClassification:
    """
    Partition scheduled items into tiers and compute the load histogram.

    Items without a next review date are ignored. Every tier is sorted by
    next review date ascending.

    Args:
        items: Scheduled items for one user
        now: Reference time; "today" is now's calendar date
        horizon_days: Load histogram length (defaults to policy)
        policy: Tier boundaries

    Returns:
        ScheduleClassification
    """
    horizon = policy.load_horizon_days if horizon_days is None else horizon_days
    scheduled = sorted(
        (i for i in items if i.next_review_date is not None),
        key=lambda i: i.next_review_date,
    )

    buckets: dict[Tier, list[TieredItem]] = {tier: [] for tier in Tier}
    for item in scheduled:
        offset = calendar_days_between(item.next_review_date, now)
        tier = classify_offset(offset, policy)
        buckets[tier].append(TieredItem(item=item, tier=tier, day_offset=offset))

    return ScheduleClassification(
        today=now.date(),
        overdue=tuple(buckets[Tier.OVERDUE]),
        due_today=tuple(buckets[Tier.DUE_TODAY]),
        due_this_week=tuple(buckets[Tier.DUE_THIS_WEEK]),
        planned_later=tuple(buckets[Tier.PLANNED_LATER]),
        load_by_day=load_histogram(scheduled, now, horizon),
    )
