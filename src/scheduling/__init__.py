"""
Review scheduling core.

Components:
- SM2Scheduler / compute_next_schedule: next interval and ease factor
- classify_schedule / select_due: due query, tiers and load histogram
- review_stats: streak and success-rate folds over review history
"""

from .errors import Conflict, InvalidArgument, NotFound, RecallError, Unavailable
from .models import ReviewEvent, ScheduleResult, ScheduleState
from .selector import (
    DayLoad,
    ScheduleClassification,
    ScheduledItem,
    SelectorPolicy,
    Tier,
    TieredItem,
    classify_schedule,
    is_due,
    relative_label,
    select_due,
)
from .sm2 import SchedulerPolicy, SM2Scheduler, compute_next_schedule
from .stats import ReviewStats, review_stats

__all__ = [
    # Errors
    "RecallError",
    "InvalidArgument",
    "NotFound",
    "Conflict",
    "Unavailable",
    # State
    "ScheduleState",
    "ReviewEvent",
    "ScheduleResult",
    # Scheduling
    "SchedulerPolicy",
    "SM2Scheduler",
    "compute_next_schedule",
    # Selection
    "SelectorPolicy",
    "ScheduledItem",
    "TieredItem",
    "Tier",
    "DayLoad",
    "ScheduleClassification",
    "classify_schedule",
    "select_due",
    "is_due",
    "relative_label",
    # Stats
    "ReviewStats",
    "review_stats",
]
