"""
SQLite State Store for leet-recall.

Provides portable persistence for:
- Problems and the user's solved-problem records (submissions)
- SM-2 schedule state per submission, guarded by a version column
- Review history log for stats and streaks

Database location: settings.state_db_path (~/.leet-recall/state.db)
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from loguru import logger

from config import get_settings
from src.scheduling import (
    Conflict,
    InvalidArgument,
    NotFound,
    ScheduledItem,
    ScheduleResult,
    ScheduleState,
    SelectorPolicy,
    SM2Scheduler,
    Unavailable,
)

DIFFICULTY_LABELS = {1: "Easy", 2: "Medium", 3: "Hard"}

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class User:
    """Addressing details used by the reminder job."""

    id: str
    email: str | None = None
    name: str | None = None
    email_notifications: bool = True


@dataclass
class Problem:
    """A catalog problem (e.g. a LeetCode question)."""

    id: str
    title: str
    title_slug: str | None = None
    difficulty: int = 2  # 1=easy, 2=medium, 3=hard

    @property
    def difficulty_label(self) -> str:
        return DIFFICULTY_LABELS.get(self.difficulty, "Unknown")


@dataclass
class Submission:
    """A solved-problem record and its schedule."""

    id: int
    user_id: str
    problem: Problem
    solved_at: datetime
    schedule: ScheduleState = field(default_factory=ScheduleState)
    notes: str | None = None
    solution: str | None = None
    language: str = "python"
    time_spent: int | None = None  # Minutes
    personal_difficulty: int | None = None  # Self-rated 1-5 at solve time
    version: int = 0

    def as_scheduled_item(self) -> ScheduledItem:
        return ScheduledItem(
            item_id=self.id,
            next_review_date=self.schedule.next_review_date,
            solved_at=self.solved_at,
            payload=self,
        )


@dataclass
class ReviewRecord:
    """A single review event."""

    id: int
    submission_id: int
    rating: int  # 1-5 recall rating
    reviewed_at: datetime
    time_spent: int | None = None
    notes: str | None = None


@dataclass
class ReviewOutcome:
    """Everything a rating submission produced."""

    submission: Submission
    review: ReviewRecord
    result: ScheduleResult

    @property
    def days_until(self) -> int:
        return self.result.interval


# =============================================================================
# Timestamp Encoding
# =============================================================================


def _to_db(ts: datetime | None) -> str | None:
    """Fixed-width ISO text so lexical order matches chronological order."""
    if ts is None:
        return None
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="microseconds")


def _from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


# =============================================================================
# State Store
# =============================================================================

_SUBMISSION_SELECT = """
    SELECT s.*, p.title AS problem_title, p.title_slug AS problem_title_slug,
           p.difficulty AS problem_difficulty
    FROM submissions s
    JOIN problems p ON p.id = s.problem_id
"""


class StateStore:
    """
    SQLite-backed persistence for the review scheduling core.

    Handles:
    - Submissions with their schedule columns (ease, interval, dates)
    - Atomic rating submission (read-compute-write in one transaction)
    - Optimistic concurrency through a per-submission version
    """

    def __init__(
        self,
        db_path: Path | None = None,
        scheduler: SM2Scheduler | None = None,
        selector_policy: SelectorPolicy | None = None,
    ):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to settings.state_db_path)
            scheduler: Scheduler used for initial state and reviews
            selector_policy: Grace period for never-scheduled submissions
        """
        self.db_path = Path(db_path or get_settings().state_db_path)
        self.scheduler = scheduler or SM2Scheduler()
        self.selector_policy = selector_policy or SelectorPolicy()

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are opened explicitly
            self._conn = sqlite3.connect(
                str(self.db_path), timeout=10.0, isolation_level=None, check_same_thread=False
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back on any exception."""
        try:
            conn = self.conn
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise Unavailable(f"State store failure at {self.db_path}: {exc}") from exc

    def _query(self, sql: str, params: tuple | dict = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise Unavailable(f"State store failure at {self.db_path}: {exc}") from exc

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    name TEXT,
                    email_notifications INTEGER NOT NULL DEFAULT 1
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS problems (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    title_slug TEXT,
                    difficulty INTEGER NOT NULL DEFAULT 2
                )
            """)

            # One row per solved problem, schedule columns inline
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    problem_id TEXT NOT NULL,
                    solved_at TEXT NOT NULL,
                    time_spent INTEGER,
                    personal_difficulty INTEGER,
                    notes TEXT,
                    solution TEXT,
                    language TEXT NOT NULL DEFAULT 'python',
                    review_count INTEGER NOT NULL DEFAULT 0,
                    ease_factor REAL NOT NULL DEFAULT 2.5,
                    interval_days INTEGER NOT NULL DEFAULT 0,
                    next_review_date TEXT,
                    last_reviewed_at TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (problem_id) REFERENCES problems(id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reviews (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    submission_id INTEGER NOT NULL,
                    rating INTEGER NOT NULL,
                    reviewed_at TEXT NOT NULL,
                    time_spent INTEGER,
                    notes TEXT,
                    FOREIGN KEY (submission_id) REFERENCES submissions(id) ON DELETE CASCADE
                )
            """)

            # Index for fast due-date queries
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_submissions_due
                ON submissions(user_id, next_review_date)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_reviews_submission
                ON reviews(submission_id, reviewed_at)
            """)

    # =========================================================================
    # Row Mapping
    # =========================================================================

    @staticmethod
    def _state_from_row(row: sqlite3.Row) -> ScheduleState:
        return ScheduleState(
            review_count=row["review_count"],
            ease_factor=row["ease_factor"],
            interval=row["interval_days"],
            next_review_date=_from_db(row["next_review_date"]),
            last_reviewed_at=_from_db(row["last_reviewed_at"]),
        )

    @classmethod
    def _submission_from_row(cls, row: sqlite3.Row) -> Submission:
        return Submission(
            id=row["id"],
            user_id=row["user_id"],
            problem=Problem(
                id=row["problem_id"],
                title=row["problem_title"],
                title_slug=row["problem_title_slug"],
                difficulty=row["problem_difficulty"],
            ),
            solved_at=_from_db(row["solved_at"]),
            schedule=cls._state_from_row(row),
            notes=row["notes"],
            solution=row["solution"],
            language=row["language"],
            time_spent=row["time_spent"],
            personal_difficulty=row["personal_difficulty"],
            version=row["version"],
        )

    @staticmethod
    def _review_from_row(row: sqlite3.Row) -> ReviewRecord:
        return ReviewRecord(
            id=row["id"],
            submission_id=row["submission_id"],
            rating=row["rating"],
            reviewed_at=_from_db(row["reviewed_at"]),
            time_spent=row["time_spent"],
            notes=row["notes"],
        )

    # =========================================================================
    # Users & Problems
    # =========================================================================

    def upsert_user(self, user: User) -> User:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, name, email_notifications)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    name = excluded.name,
                    email_notifications = excluded.email_notifications
            """,
                (user.id, user.email, user.name, int(user.email_notifications)),
            )
        return user

    def get_user(self, user_id: str) -> User:
        rows = self._query("SELECT * FROM users WHERE id = ?", (user_id,))
        if not rows:
            raise NotFound("user", user_id)
        row = rows[0]
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            email_notifications=bool(row["email_notifications"]),
        )

    def upsert_problem(self, problem: Problem) -> Problem:
        """Create the problem if missing; existing catalog rows are left untouched."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO problems (id, title, title_slug, difficulty)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
            """,
                (problem.id, problem.title, problem.title_slug, problem.difficulty),
            )
        return problem

    # =========================================================================
    # Submissions
    # =========================================================================

    def add_submission(
        self,
        user_id: str,
        problem: Problem,
        solved_at: datetime,
        notes: str | None = None,
        solution: str | None = None,
        language: str = "python",
        time_spent: int | None = None,
        personal_difficulty: int | None = None,
    ) -> Submission:
        """
        Record a solved problem and schedule its first review.

        The first review is due one grace period after solving. The owner
        gets a users row (notifications on) if they don't have one yet, so
        the reminder job can find them.

        Returns:
            The stored Submission
        """
        state = self.scheduler.initial_state(solved_at, grace=self.selector_policy.solve_grace)

        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO users (id) VALUES (?) ON CONFLICT(id) DO NOTHING",
                (user_id,),
            )
            conn.execute(
                """
                INSERT INTO problems (id, title, title_slug, difficulty)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
            """,
                (problem.id, problem.title, problem.title_slug, problem.difficulty),
            )
            cursor = conn.execute(
                """
                INSERT INTO submissions (
                    user_id, problem_id, solved_at, time_spent, personal_difficulty,
                    notes, solution, language, review_count, ease_factor,
                    interval_days, next_review_date, last_reviewed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    user_id,
                    problem.id,
                    _to_db(solved_at),
                    time_spent,
                    personal_difficulty,
                    notes,
                    solution,
                    language or "python",
                    state.review_count,
                    state.ease_factor,
                    state.interval,
                    _to_db(state.next_review_date),
                    _to_db(state.last_reviewed_at),
                ),
            )
            submission_id = cursor.lastrowid

        logger.info(f"Logged solve of {problem.id} for {user_id}, first review {state.next_review_date}")
        return self.get_submission(submission_id)

    def get_submission(self, submission_id: int, user_id: str | None = None) -> Submission:
        """
        Get a submission by id.

        Raises:
            NotFound: missing, or owned by a different user when user_id is given
        """
        rows = self._query(f"{_SUBMISSION_SELECT} WHERE s.id = ?", (submission_id,))
        if not rows or (user_id is not None and rows[0]["user_id"] != user_id):
            raise NotFound("submission", submission_id)
        return self._submission_from_row(rows[0])

    def list_submissions(
        self,
        user_id: str,
        search: str | None = None,
        difficulty: int | None = None,
    ) -> list[Submission]:
        """
        Submissions for a user, most recently solved first.

        Args:
            user_id: Owner
            search: Case-insensitive title substring, or a substring of the problem id
            difficulty: Only problems of this difficulty (1-3)
        """
        clauses = ["s.user_id = ?"]
        params: list = [user_id]
        if search and search.strip():
            clauses.append("(LOWER(p.title) LIKE ? OR s.problem_id LIKE ?)")
            term = search.strip()
            params.extend([f"%{term.lower()}%", f"%{term}%"])
        if difficulty is not None:
            clauses.append("p.difficulty = ?")
            params.append(difficulty)

        rows = self._query(
            f"{_SUBMISSION_SELECT} WHERE {' AND '.join(clauses)} ORDER BY s.solved_at DESC, s.id DESC",
            tuple(params),
        )
        return [self._submission_from_row(row) for row in rows]

    def list_scheduled(self, user_id: str) -> list[Submission]:
        """Submissions with a next review date, earliest first."""
        rows = self._query(
            f"""{_SUBMISSION_SELECT}
            WHERE s.user_id = ? AND s.next_review_date IS NOT NULL
            ORDER BY s.next_review_date ASC, s.id ASC
            """,
            (user_id,),
        )
        return [self._submission_from_row(row) for row in rows]

    def delete_submission(self, submission_id: int, user_id: str) -> None:
        """Delete a submission; its schedule and reviews go with it."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT user_id FROM submissions WHERE id = ?", (submission_id,)
            ).fetchone()
            if row is None or row["user_id"] != user_id:
                raise NotFound("submission", submission_id)
            conn.execute("DELETE FROM submissions WHERE id = ?", (submission_id,))

        logger.info(f"Deleted submission {submission_id} for {user_id}")

    # =========================================================================
    # Schedule State Operations
    # =========================================================================

    def load_schedule_state(self, item_id: int) -> ScheduleState:
        rows = self._query("SELECT * FROM submissions WHERE id = ?", (item_id,))
        if not rows:
            raise NotFound("submission", item_id)
        return self._state_from_row(rows[0])

    def save_schedule_state(self, item_id: int, state: ScheduleState, expected_version: int) -> int:
        """
        Write a schedule state if nobody else wrote since expected_version.

        Returns:
            The new version

        Raises:
            NotFound: unknown item
            Conflict: version moved on since the caller read it
            InvalidArgument: attempt to unschedule a scheduled item
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT version, next_review_date FROM submissions WHERE id = ?", (item_id,)
            ).fetchone()
            if row is None:
                raise NotFound("submission", item_id)
            if row["version"] != expected_version:
                logger.warning(f"Conflict saving schedule for {item_id}")
                raise Conflict(item_id, expected_version, row["version"])
            if state.next_review_date is None and row["next_review_date"] is not None:
                raise InvalidArgument(f"Submission {item_id} is scheduled and cannot be unscheduled")

            self._write_state(conn, item_id, state, expected_version)
        return expected_version + 1

    @staticmethod
    def _write_state(conn: sqlite3.Connection, item_id: int, state: ScheduleState, version: int) -> None:
        conn.execute(
            """
            UPDATE submissions SET
                review_count = ?,
                ease_factor = ?,
                interval_days = ?,
                next_review_date = ?,
                last_reviewed_at = ?,
                version = version + 1
            WHERE id = ? AND version = ?
        """,
            (
                state.review_count,
                state.ease_factor,
                state.interval,
                _to_db(state.next_review_date),
                _to_db(state.last_reviewed_at),
                item_id,
                version,
            ),
        )

    def list_due_items(
        self,
        user_id: str,
        now: datetime,
        limit: int | None = None,
    ) -> list[tuple[ScheduleState, Submission]]:
        """
        Submissions due for review at `now`.

        Due means next_review_date <= now, or never scheduled and solved at
        least one grace period ago. Ordered most overdue first.
        """
        cutoff = now - self.selector_policy.solve_grace
        rows = self._query(
            f"""{_SUBMISSION_SELECT}
            WHERE s.user_id = :user_id
              AND (
                s.next_review_date <= :now
                OR (s.next_review_date IS NULL AND s.solved_at <= :cutoff)
              )
            ORDER BY s.next_review_date IS NULL, s.next_review_date ASC, s.solved_at ASC, s.id ASC
            LIMIT :limit
            """,
            {
                "user_id": user_id,
                "now": _to_db(now),
                "cutoff": _to_db(cutoff),
                "limit": -1 if limit is None else limit,
            },
        )
        submissions = [self._submission_from_row(row) for row in rows]
        return [(s.schedule, s) for s in submissions]

    # =========================================================================
    # Review Operations
    # =========================================================================

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
    ) -> ReviewOutcome:
        """
        Apply a recall rating to a submission as one transaction.

        Reads the current schedule, runs the scheduler, writes the new
        schedule and logs the review. Nothing is written if any step fails.

        Args:
            item_id: Submission id
            rating: 1-5 recall rating
            now: Review timestamp
            user_id: Owner check (NotFound for other users' submissions)
            expected_version: Reject with Conflict if the row moved on
            time_spent: Minutes spent on the review
            notes: Free-form review notes
            scheduler: Override for the store's scheduler

        Returns:
            ReviewOutcome
        """
        scheduler = scheduler or self.scheduler

        with self._transaction() as conn:
            row = conn.execute(f"{_SUBMISSION_SELECT} WHERE s.id = ?", (item_id,)).fetchone()
            if row is None or (user_id is not None and row["user_id"] != user_id):
                raise NotFound("submission", item_id)
            if expected_version is not None and row["version"] != expected_version:
                logger.warning(f"Conflict reviewing {item_id}: version {row['version']} != {expected_version}")
                raise Conflict(item_id, expected_version, row["version"])

            state = self._state_from_row(row)
            result = scheduler.next_schedule(state, rating, now)
            new_state = state.with_result(result, now)

            self._write_state(conn, item_id, new_state, row["version"])
            cursor = conn.execute(
                """
                INSERT INTO reviews (submission_id, rating, reviewed_at, time_spent, notes)
                VALUES (?, ?, ?, ?, ?)
            """,
                (item_id, rating, _to_db(now), time_spent, notes),
            )
            review_id = cursor.lastrowid

        submission = self._submission_from_row(row)
        submission.schedule = new_state
        submission.version = row["version"] + 1

        logger.info(
            f"Reviewed {item_id}: rating={rating}, "
            f"next_review={result.next_review_date}, interval={result.interval}d"
        )

        return ReviewOutcome(
            submission=submission,
            review=ReviewRecord(
                id=review_id,
                submission_id=item_id,
                rating=rating,
                reviewed_at=now,
                time_spent=time_spent,
                notes=notes,
            ),
            result=result,
        )

    def list_reviews(
        self,
        user_id: str | None = None,
        submission_id: int | None = None,
        limit: int | None = None,
    ) -> list[ReviewRecord]:
        """Reviews filtered by owner and/or submission, most recent first."""
        clauses = []
        params: list = []
        if user_id is not None:
            clauses.append("s.user_id = ?")
            params.append(user_id)
        if submission_id is not None:
            clauses.append("r.submission_id = ?")
            params.append(submission_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(-1 if limit is None else limit)

        rows = self._query(
            f"""
            SELECT r.* FROM reviews r
            JOIN submissions s ON s.id = r.submission_id
            {where}
            ORDER BY r.reviewed_at DESC, r.id DESC
            LIMIT ?
            """,
            tuple(params),
        )
        return [self._review_from_row(row) for row in rows]

    # =========================================================================
    # Stats & Reminders
    # =========================================================================

    def get_stats(self, user_id: str, now: datetime) -> dict:
        """
        Get overall tracking statistics for a user.

        Returns:
            Dictionary with aggregate counts
        """
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        total = self._query(
            "SELECT COUNT(*) AS cnt FROM submissions WHERE user_id = ?", (user_id,)
        )[0]["cnt"]
        scheduled = self._query(
            "SELECT COUNT(*) AS cnt FROM submissions WHERE user_id = ? AND next_review_date IS NOT NULL",
            (user_id,),
        )[0]["cnt"]
        reviewed_today = self._query(
            """
            SELECT COUNT(*) AS cnt FROM reviews r
            JOIN submissions s ON s.id = r.submission_id
            WHERE s.user_id = ? AND r.reviewed_at >= ?
        """,
            (user_id, _to_db(day_start)),
        )[0]["cnt"]

        solved_this_week = self._query(
            "SELECT COUNT(*) AS cnt FROM submissions WHERE user_id = ? AND solved_at >= ?",
            (user_id, _to_db(now - timedelta(days=7))),
        )[0]["cnt"]
        total_time_spent = self._query(
            "SELECT COALESCE(SUM(time_spent), 0) AS total FROM submissions WHERE user_id = ?",
            (user_id,),
        )[0]["total"]

        # Difficulty breakdown
        by_difficulty = {label: 0 for label in DIFFICULTY_LABELS.values()}
        for row in self._query(
            """
            SELECT p.difficulty, COUNT(*) AS cnt FROM submissions s
            JOIN problems p ON p.id = s.problem_id
            WHERE s.user_id = ?
            GROUP BY p.difficulty
        """,
            (user_id,),
        ):
            label = DIFFICULTY_LABELS.get(row["difficulty"], "Unknown")
            by_difficulty[label] = by_difficulty.get(label, 0) + row["cnt"]

        return {
            "total_submissions": total,
            "scheduled": scheduled,
            "due_now": len(self.list_due_items(user_id, now)),
            "reviewed_today": reviewed_today,
            "solved_this_week": solved_this_week,
            "total_time_spent": total_time_spent,
            "by_difficulty": by_difficulty,
        }

    def list_users_with_due_reviews(self, now: datetime) -> list[tuple[User, list[Submission]]]:
        """Users with notifications on and at least one due submission."""
        rows = self._query("SELECT * FROM users WHERE email_notifications = 1 ORDER BY id")
        result = []
        for row in rows:
            due = [submission for _, submission in self.list_due_items(row["id"], now)]
            if due:
                user = User(
                    id=row["id"],
                    email=row["email"],
                    name=row["name"],
                    email_notifications=True,
                )
                result.append((user, due))
        return result

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
