"""
Review Session: walks a user through due submissions one at a time.

State machine:
    IDLE -> PRESENTING(item) -> RATED -> PRESENTING(next) -> ... -> EMPTY

Rating goes through the store's atomic review path; skipping only
reorders the in-memory queue.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from loguru import logger

from src.scheduling import (
    Conflict,
    InvalidArgument,
    ScheduleState,
    SelectorPolicy,
    SM2Scheduler,
    select_due,
)

from .state_store import ReviewOutcome, Submission


class ScheduleRepository(Protocol):
    """Persistence contract the session depends on (StateStore implements it)."""

    def load_schedule_state(self, item_id: int) -> ScheduleState: ...

    def save_schedule_state(self, item_id: int, state: ScheduleState, expected_version: int) -> int: ...

    def list_due_items(
        self, user_id: str, now: datetime, limit: int | None = None
    ) -> list[tuple[ScheduleState, Submission]]: ...

    def get_submission(self, submission_id: int, user_id: str | None = None) -> Submission: ...

    def record_review(
        self,
        item_id: int,
        rating: int,
        now: datetime,
        user_id: str | None = None,
        expected_version: int | None = None,
        time_spent: int | None = None,
        notes: str | None = None,
        scheduler: SM2Scheduler | None = None,
    ) -> ReviewOutcome: ...


class SessionState(Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    RATED = "rated"
    EMPTY = "empty"


@dataclass(frozen=True)
class Reveal:
    """What the user saved when solving, shown only on request."""

    solution: str | None
    notes: str | None
    language: str


class ReviewSession:
    """
    Orchestrates one user's review pass.

    The queue is fetched lazily and re-fetched whenever it runs dry, so a
    session spanning midnight picks up newly due submissions.
    """

    def __init__(
        self,
        store: ScheduleRepository,
        user_id: str,
        scheduler: SM2Scheduler | None = None,
        clock: Callable[[], datetime] = datetime.now,
        limit: int | None = None,
        selector_policy: SelectorPolicy | None = None,
    ):
        """
        Args:
            store: Persistence collaborator
            user_id: Owner of the submissions under review
            scheduler: Scheduler handed to the store on each rating
            clock: Source of "now" (injectable for tests)
            limit: Maximum items fetched per queue refresh
            selector_policy: Grace period used when ordering the queue
        """
        self.store = store
        self.user_id = user_id
        self.scheduler = scheduler or SM2Scheduler()
        self.clock = clock
        self.limit = limit
        self.selector_policy = selector_policy or SelectorPolicy()

        self.state = SessionState.IDLE
        self.current: Submission | None = None
        self.queue: deque[Submission] = deque()
        self.completed = 0
        self.skipped = 0
        self.presented_at: datetime | None = None
        self.revealed = False
        self.last_outcome: ReviewOutcome | None = None

    # =========================================================================
    # Progress
    # =========================================================================

    @property
    def remaining(self) -> int:
        return len(self.queue) + (1 if self.current is not None else 0)

    @property
    def total_due(self) -> int:
        return self.remaining + self.completed

    @property
    def progress(self) -> float:
        """Fraction of this session's known workload already rated."""
        total = self.total_due
        return self.completed / total if total else 0.0

    def elapsed_minutes(self) -> int:
        """Whole minutes since the current item was presented (at least 1)."""
        if self.presented_at is None:
            return 1
        seconds = (self.clock() - self.presented_at).total_seconds()
        return max(1, math.floor(seconds / 60 + 0.5))

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self) -> Submission | None:
        """Fetch the due queue and present the first item."""
        if self.state is not SessionState.IDLE:
            raise InvalidArgument(f"Session already started (state={self.state.value})")
        self._refresh()
        self._present_next()
        logger.debug(f"Review session for {self.user_id} started with {self.remaining} items")
        return self.current

    def reveal(self) -> Reveal:
        """Show the saved solution and notes for the current item."""
        item = self._require_presenting()
        self.revealed = True
        return Reveal(solution=item.solution, notes=item.notes, language=item.language)

    def rate(
        self,
        rating: int,
        time_spent: int | None = None,
        notes: str | None = None,
        advance: bool = True,
    ) -> ReviewOutcome:
        """
        Rate the current item, persist the new schedule, and move on.

        On any failure the session stays on the same item and nothing
        counts as completed.

        Args:
            rating: 1-5 recall rating
            time_spent: Minutes on this review (defaults to time since presented)
            notes: Free-form review notes
            advance: Move to the next item right away instead of holding in RATED

        Raises:
            InvalidArgument: rating outside 1-5, or nothing is being presented
            Conflict: the submission changed since it was queued
            NotFound / Unavailable: propagated from the store
        """
        item = self._require_presenting()
        if time_spent is None:
            time_spent = self.elapsed_minutes()
        try:
            outcome = self.store.record_review(
                item.id,
                rating,
                self.clock(),
                user_id=self.user_id,
                expected_version=item.version,
                time_spent=time_spent,
                notes=notes,
                scheduler=self.scheduler,
            )
        except Conflict:
            logger.warning(f"Submission {item.id} changed during the session; reload before rating again")
            raise

        self.completed += 1
        self.last_outcome = outcome
        self.state = SessionState.RATED

        if advance:
            self.advance()
        return outcome

    def advance(self) -> Submission | None:
        """Leave RATED for the next queued item, refetching if the queue is empty."""
        if self.state is not SessionState.RATED:
            raise InvalidArgument(f"Cannot advance from state {self.state.value}")
        self.current = None
        if not self.queue:
            self._refresh()
        self._present_next()
        return self.current

    def skip(self) -> Submission:
        """Send the current item to the back of the queue; its schedule is untouched."""
        item = self._require_presenting()
        self.queue.append(item)
        self.current = self.queue.popleft()
        self.revealed = False
        self.presented_at = self.clock()
        self.skipped += 1
        return self.current

    def reload_current(self) -> Submission:
        """Re-read the current item after a Conflict so it can be rated again."""
        item = self._require_presenting()
        self.current = self.store.get_submission(item.id, user_id=self.user_id)
        return self.current

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_presenting(self) -> Submission:
        if self.state is not SessionState.PRESENTING or self.current is None:
            raise InvalidArgument(f"No item is being presented (state={self.state.value})")
        return self.current

    def _refresh(self) -> None:
        now = self.clock()
        due = self.store.list_due_items(self.user_id, now, limit=self.limit)
        ordered = select_due((s.as_scheduled_item() for _, s in due), now, self.selector_policy)
        self.queue = deque(item.payload for item in ordered)

    def _present_next(self) -> None:
        self.revealed = False
        if self.queue:
            self.current = self.queue.popleft()
            self.state = SessionState.PRESENTING
            self.presented_at = self.clock()
        else:
            self.current = None
            self.state = SessionState.EMPTY
            self.presented_at = None
