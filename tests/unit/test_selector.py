"""
Unit tests for the due-set selector.

Tests the due query (including the grace window for never-scheduled
solves), tiering by calendar day, the priority queue and the load
histogram.

Run: pytest tests/unit/test_selector.py -v
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.scheduling import (
    InvalidArgument,
    ScheduledItem,
    SelectorPolicy,
    Tier,
    classify_schedule,
    is_due,
    relative_label,
    select_due,
)
from src.scheduling.selector import calendar_days_between, classify_offset, load_histogram

NOW = datetime(2024, 3, 15, 12, 0, 0)


def item(item_id, days=0, hours=0, solved_at=None):
    """Scheduled item whose next review is `days` calendar days from NOW."""
    review = None if days is None else NOW + timedelta(days=days, hours=hours)
    return ScheduledItem(item_id=item_id, next_review_date=review, solved_at=solved_at)


class TestDueQuery:
    """Test is_due and select_due."""

    def test_scheduled_in_past_is_due(self):
        assert is_due(item("a", days=-1), NOW)

    def test_scheduled_exactly_now_is_due(self):
        assert is_due(item("a", days=0), NOW)

    def test_scheduled_later_today_not_due(self):
        assert not is_due(item("a", hours=1), NOW)

    def test_unscheduled_solved_exactly_24h_ago_is_due(self):
        solved = ScheduledItem("a", None, solved_at=NOW - timedelta(hours=24))
        assert is_due(solved, NOW)

    def test_unscheduled_solved_23h59m_ago_not_due(self):
        solved = ScheduledItem("a", None, solved_at=NOW - timedelta(hours=23, minutes=59))
        assert not is_due(solved, NOW)

    def test_unscheduled_without_solve_time_not_due(self):
        assert not is_due(ScheduledItem("a", None), NOW)

    def test_custom_grace(self):
        policy = SelectorPolicy(solve_grace=timedelta(hours=2))
        solved = ScheduledItem("a", None, solved_at=NOW - timedelta(hours=3))
        assert is_due(solved, NOW, policy)

    def test_select_due_orders_most_overdue_first(self):
        items = [
            item("recent", days=-1),
            ScheduledItem("fresh", None, solved_at=NOW - timedelta(days=2)),
            item("future", days=3),
            item("oldest", days=-5),
        ]
        due = select_due(items, NOW)
        assert [i.item_id for i in due] == ["oldest", "recent", "fresh"]


class TestTiering:
    """Test calendar-day tiers."""

    @pytest.mark.parametrize(
        "offset,tier",
        [
            (-30, Tier.OVERDUE),
            (-1, Tier.OVERDUE),
            (0, Tier.DUE_TODAY),
            (1, Tier.DUE_THIS_WEEK),
            (7, Tier.DUE_THIS_WEEK),
            (8, Tier.PLANNED_LATER),
            (200, Tier.PLANNED_LATER),
        ],
    )
    def test_classify_offset(self, offset, tier):
        assert classify_offset(offset) is tier

    def test_calendar_days_ignore_time_of_day(self):
        """Late tonight is still today; just after midnight is tomorrow."""
        assert calendar_days_between(datetime(2024, 3, 15, 23, 59), NOW) == 0
        assert calendar_days_between(datetime(2024, 3, 16, 0, 1), NOW) == 1
        assert calendar_days_between(datetime(2024, 3, 14, 23, 59), NOW) == -1

    def test_earlier_today_is_due_today(self):
        result = classify_schedule([item("a", hours=-3)], NOW)
        assert [t.item.item_id for t in result.due_today] == ["a"]
        assert result.overdue == ()

    def test_aware_times_use_now_timezone(self):
        tz = timezone(timedelta(hours=-5))
        now = datetime(2024, 3, 15, 20, 0, tzinfo=tz)
        # 02:00 UTC on the 16th is still the 15th at UTC-5
        review = datetime(2024, 3, 16, 2, 0, tzinfo=timezone.utc)
        assert calendar_days_between(review, now) == 0

    def test_tiers_disjoint_and_exhaustive(self):
        items = [item(f"i{d}", days=d) for d in range(-4, 20)] + [ScheduledItem("unscheduled", None, NOW)]
        result = classify_schedule(items, NOW)

        tiers = [result.overdue, result.due_today, result.due_this_week, result.planned_later]
        ids = [t.item.item_id for tier in tiers for t in tier]
        assert len(ids) == len(set(ids))
        assert set(ids) == {f"i{d}" for d in range(-4, 20)}
        assert all(t.day_offset < 0 for t in result.overdue)
        assert all(t.day_offset == 0 for t in result.due_today)
        assert all(0 < t.day_offset <= 7 for t in result.due_this_week)
        assert all(t.day_offset > 7 for t in result.planned_later)

    def test_tier_counts(self):
        items = [item("a", days=-2), item("b", days=-1), item("c"), item("d", days=3), item("e", days=9)]
        counts = classify_schedule(items, NOW).tier_counts()
        assert counts == {"overdue": 2, "due_today": 1, "due_this_week": 1, "planned_later": 1}

    def test_week_boundary_is_configurable(self):
        policy = SelectorPolicy(week_horizon_days=3)
        result = classify_schedule([item("a", days=4)], NOW, policy=policy)
        assert len(result.planned_later) == 1


class TestPriorityQueue:
    """Test priority ordering."""

    def test_overdue_then_today_then_week(self):
        items = [
            item("week", days=2),
            item("today", hours=2),
            item("later", days=30),
            item("overdue-1", days=-1),
            item("overdue-3", days=-3),
        ]
        result = classify_schedule(items, NOW)

        assert [t.item.item_id for t in result.priority_queue] == ["overdue-3", "overdue-1", "today", "week"]
        assert result.urgent_count == 3

    def test_tiers_sorted_by_review_date(self):
        items = [item("b", days=5), item("a", days=1), item("c", days=5, hours=-2)]
        result = classify_schedule(items, NOW)
        assert [t.item.item_id for t in result.due_this_week] == ["a", "c", "b"]

    def test_within_days_includes_overdue(self):
        items = [item("old", days=-10), item("soon", days=20), item("far", days=40)]
        result = classify_schedule(items, NOW)
        assert [t.item.item_id for t in result.within_days(30)] == ["old", "soon"]

    def test_group_by_day(self):
        items = [item("a", days=1), item("b", days=1, hours=3), item("c", days=-2)]
        grouped = classify_schedule(items, NOW).group_by_day()

        assert list(grouped) == [date(2024, 3, 13), date(2024, 3, 16)]
        assert [t.item.item_id for t in grouped[date(2024, 3, 16)]] == ["a", "b"]


class TestLoadHistogram:
    """Test the forward-looking load histogram."""

    def test_default_horizon_is_two_weeks(self):
        result = classify_schedule([], NOW)
        assert len(result.load_by_day) == 14
        assert result.load_by_day[0].day == NOW.date()
        assert all(entry.count == 0 for entry in result.load_by_day)

    def test_counts_exact_calendar_date(self):
        items = [item("a", days=1), item("b", days=1, hours=6), item("c", days=3), item("d", days=-1)]
        loads = load_histogram(items, NOW, 5)

        assert [entry.count for entry in loads] == [0, 2, 0, 1, 0]

    def test_outside_horizon_not_counted(self):
        loads = load_histogram([item("a", days=14)], NOW, 14)
        assert sum(entry.count for entry in loads) == 0

    def test_zero_horizon(self):
        assert classify_schedule([item("a")], NOW, horizon_days=0).load_by_day == ()

    def test_negative_horizon(self):
        with pytest.raises(InvalidArgument):
            classify_schedule([], NOW, horizon_days=-1)

    def test_highest_load_day_prefers_first(self):
        items = [item("a", days=2), item("b", days=5), item("c", days=5), item("d", days=2)]
        peak = classify_schedule(items, NOW).highest_load_day
        assert peak.day == date(2024, 3, 17)
        assert peak.count == 2

    def test_highest_load_day_empty_horizon(self):
        assert classify_schedule([], NOW, horizon_days=0).highest_load_day is None


class TestClassifyProperties:
    """Read-only, deterministic behaviour."""

    def test_idempotent(self):
        items = [item("a", days=-1), item("b", days=2), item("c", days=12)]
        assert classify_schedule(items, NOW) == classify_schedule(items, NOW)

    def test_accepts_generator(self):
        result = classify_schedule((item(str(d), days=d) for d in range(3)), NOW)
        assert len(result.all_items) == 3
        assert len(result.load_by_day) == 14


class TestRelativeLabel:
    """Test human-readable distances."""

    @pytest.mark.parametrize(
        "offset,label",
        [
            (-3, "Overdue by 3 days"),
            (-1, "Overdue by 1 day"),
            (0, "Today"),
            (1, "Tomorrow"),
            (5, "In 5 days"),
            (7, "In 7 days"),
            (8, "In 2 weeks"),
            (30, "In 5 weeks"),
            (31, "In 2 months"),
            (90, "In 3 months"),
        ],
    )
    def test_labels(self, offset, label):
        assert relative_label(offset) == label
