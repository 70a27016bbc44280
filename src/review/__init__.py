"""
leet-recall review layer.

Persistence, the interactive review session, the reminder job and the
Rich CLI built on top of src.scheduling.

Components:
- StateStore: SQLite persistence with atomic rating submission
- ReviewSession: One-at-a-time walk through due submissions
- send_due_reminders: Digest job for users with due reviews
"""

from .reminders import (
    LogReminderSender,
    ReminderResult,
    ReminderSender,
    ReminderSummary,
    render_reminder_text,
    send_due_reminders,
)
from .session import Reveal, ReviewSession, ScheduleRepository, SessionState
from .state_store import (
    Problem,
    ReviewOutcome,
    ReviewRecord,
    StateStore,
    Submission,
    User,
)

__all__ = [
    # Persistence
    "StateStore",
    "User",
    "Problem",
    "Submission",
    "ReviewRecord",
    "ReviewOutcome",
    # Session
    "ReviewSession",
    "ScheduleRepository",
    "SessionState",
    "Reveal",
    # Reminders
    "ReminderSender",
    "LogReminderSender",
    "ReminderResult",
    "ReminderSummary",
    "render_reminder_text",
    "send_due_reminders",
]
