"""
Review reminder job.

Finds users with notifications enabled and due submissions, then hands
each user's digest to a ReminderSender. Delivery itself (email, chat,
...) is the sender's business.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from loguru import logger

from .state_store import StateStore, Submission, User


class ReminderSender(Protocol):
    def send_review_reminder(self, user: User, submissions: list[Submission]) -> bool: ...


@dataclass
class ReminderResult:
    user_id: str
    email: str | None
    problems: int
    status: str  # "sent" | "failed"


@dataclass
class ReminderSummary:
    users_processed: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    timestamp: datetime | None = None
    results: list[ReminderResult] = field(default_factory=list)


def render_reminder_text(user: User, submissions: list[Submission], preview_chars: int = 100) -> str:
    """Plain-text digest of due problems."""
    count = len(submissions)
    lines = [
        f"Hi {user.name or 'there'}!",
        "",
        f"You have {count} problem{'s' if count != 1 else ''} ready for review:",
        "",
    ]
    for s in submissions:
        last = s.schedule.last_reviewed_at.strftime("%Y-%m-%d") if s.schedule.last_reviewed_at else "Never"
        lines.append(f"- {s.problem.id}. {s.problem.title} [{s.problem.difficulty_label}]")
        lines.append(f"  Last reviewed: {last} | Review count: {s.schedule.review_count}")
        if s.notes:
            preview = s.notes[:preview_chars]
            suffix = "..." if len(s.notes) > preview_chars else ""
            lines.append(f"  Your notes: {preview}{suffix}")
    return "\n".join(lines)


class LogReminderSender:
    """Writes digests to the log instead of delivering them."""

    def __init__(self, preview_chars: int = 100):
        self.preview_chars = preview_chars

    def send_review_reminder(self, user: User, submissions: list[Submission]) -> bool:
        if not user.email:
            logger.warning(f"User {user.id} has no email address; skipping reminder")
            return False
        body = render_reminder_text(user, submissions, self.preview_chars)
        logger.info(f"Reminder for {user.email}:\n{body}")
        return True


def send_due_reminders(store: StateStore, sender: ReminderSender, now: datetime) -> ReminderSummary:
    """
    Dispatch one digest per user with due reviews.

    A sender failure (False or an exception) is counted and logged; the
    job carries on with the next user. Store failures propagate.
    """
    users = store.list_users_with_due_reviews(now)
    logger.info(f"Found {len(users)} users with due reviews")

    summary = ReminderSummary(users_processed=len(users), timestamp=now)
    for user, submissions in users:
        try:
            sent = sender.send_review_reminder(user, submissions)
        except Exception as exc:
            logger.error(f"Failed to send reminder to {user.email or user.id}: {exc}")
            sent = False

        if sent:
            summary.emails_sent += 1
        else:
            summary.emails_failed += 1
        summary.results.append(
            ReminderResult(
                user_id=user.id,
                email=user.email,
                problems=len(submissions),
                status="sent" if sent else "failed",
            )
        )

    return summary
