"""
leet-recall: Main CLI.

A Rich terminal interface for logging solved problems and reviewing
them on an SM-2 schedule.

Commands:
- recall solve     - Log a solved problem
- recall list      - List solved problems (search, difficulty filter)
- recall review    - Start a review session
- recall schedule  - Show review tiers and upcoming load
- recall stats     - Show review statistics
- recall delete    - Remove a logged problem
- recall remind    - Dispatch due-review reminders
- recall user      - Set reminder email, name and opt-in
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.syntax import Syntax
from rich.table import Table

from config import get_settings
from src.scheduling import (
    Conflict,
    NotFound,
    RecallError,
    SchedulerPolicy,
    SelectorPolicy,
    SM2Scheduler,
    classify_schedule,
    relative_label,
    review_stats,
)
from src.scheduling.selector import calendar_days_between

from .reminders import LogReminderSender, send_due_reminders
from .session import Reveal, ReviewSession, SessionState
from .state_store import Problem, StateStore, Submission, User

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="recall",
    help="leet-recall: spaced repetition for solved coding problems",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "dim": "dim",
    "difficulty": {
        1: "green",
        2: "yellow",
        3: "red",
    },
    "tier": {
        "overdue": "red",
        "due_today": "yellow",
        "due_this_week": "cyan",
        "planned_later": "dim",
    },
}

DIFFICULTY_CHOICES = {"easy": 1, "medium": 2, "hard": 3}
SCHEDULE_VIEWS = ("focus", "30days", "all")


def _difficulty_level(difficulty: str) -> int:
    level = DIFFICULTY_CHOICES.get(difficulty.lower())
    if level is None:
        console.print(f"[red]Unknown difficulty '{difficulty}'. Use easy, medium or hard.[/red]")
        raise typer.Exit(2)
    return level


def style_difficulty(problem: Problem) -> str:
    color = STYLES["difficulty"].get(problem.difficulty, "white")
    return f"[{color}]{problem.difficulty_label}[/{color}]"


# =============================================================================
# Helpers
# =============================================================================


def _open_store() -> StateStore:
    settings = get_settings()
    return StateStore(
        db_path=settings.state_db_path,
        scheduler=SM2Scheduler(SchedulerPolicy.from_settings(settings)),
        selector_policy=SelectorPolicy.from_settings(settings),
    )


def _user(user: Optional[str]) -> str:
    return user or get_settings().default_user_id


def _fail(exc: RecallError) -> None:
    console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
    raise typer.Exit(1)


def display_item_front(submission: Submission, index: int, total: int) -> None:
    """Show the problem without its solution."""
    problem = submission.problem
    header = f"Review {index}/{total}  |  {style_difficulty(problem)}  |  Reviewed {submission.schedule.review_count}x"

    content = f"[bold]{problem.id}. {problem.title}[/bold]"
    if problem.title_slug:
        content += f"\n[dim]https://leetcode.com/problems/{problem.title_slug}/[/dim]"
    content += "\n\nAttempt the problem without peeking, then rate how well you recalled it."

    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_reveal(reveal: Reveal) -> None:
    if reveal.solution:
        console.print(Panel(
            Syntax(reveal.solution, reveal.language or "text", word_wrap=True),
            title="Saved solution",
            border_style="green",
        ))
    else:
        console.print("[dim]No saved solution for this problem.[/dim]")
    if reveal.notes:
        console.print(Panel(reveal.notes, title="Notes", border_style="blue"))


def _ask_rating() -> int:
    console.print("\n[dim]Rate your recall:[/dim]")
    console.print("  5 = Perfect recall")
    console.print("  4 = Good, some hesitation")
    console.print("  3 = Okay, real difficulty")
    console.print("  2 = Hard, mostly forgotten")
    console.print("  1 = Forgot")
    return IntPrompt.ask("Rating", choices=["1", "2", "3", "4", "5"])


# =============================================================================
# Commands
# =============================================================================


@app.command()
def solve(
    problem_id: str = typer.Argument(..., help="Catalog id of the problem"),
    title: str = typer.Option(..., "--title", "-t", help="Problem title"),
    slug: Optional[str] = typer.Option(None, "--slug", help="URL slug of the problem"),
    difficulty: str = typer.Option("medium", "--difficulty", "-d", help="easy, medium or hard"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes to show at review time"),
    solution_file: Optional[Path] = typer.Option(None, "--solution", "-s", help="File with your solution"),
    language: str = typer.Option("python", "--language", "-l", help="Solution language"),
    time_spent: Optional[int] = typer.Option(None, "--minutes", "-m", help="Minutes spent solving"),
    personal_difficulty: Optional[int] = typer.Option(
        None, "--felt", min=1, max=5, help="How hard it felt, 1-5"
    ),
    solved_at: Optional[datetime] = typer.Option(None, "--solved-at", help="When it was solved (default: now)"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """Log a solved problem. Its first review is scheduled for tomorrow."""
    level = _difficulty_level(difficulty)
    solution = solution_file.read_text(encoding="utf-8") if solution_file else None

    try:
        with _open_store() as store:
            submission = store.add_submission(
                _user(user),
                Problem(id=problem_id, title=title, title_slug=slug, difficulty=level),
                solved_at=solved_at or datetime.now(),
                notes=notes,
                solution=solution,
                language=language,
                time_spent=time_spent,
                personal_difficulty=personal_difficulty,
            )
    except RecallError as exc:
        _fail(exc)

    due = submission.schedule.next_review_date
    console.print(
        f"[green]Logged #{submission.id}: {submission.problem.title}[/green] "
        f"- first review {due:%Y-%m-%d %H:%M}"
    )


@app.command()
def review(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """
    Start an interactive review session.

    Presents due problems one at a time. The saved solution is only shown
    when you ask for it.
    """
    settings = get_settings()
    console.print("\n[bold cyan]leet-recall[/bold cyan] - Review Session", style="bold")
    console.print("=" * 40)

    try:
        store = _open_store()
    except RecallError as exc:
        _fail(exc)

    session = ReviewSession(
        store,
        _user(user),
        scheduler=store.scheduler,
        limit=settings.session_limit,
        selector_policy=store.selector_policy,
    )

    try:
        if session.start() is None:
            console.print("\n[green]No reviews due![/green]")
            console.print("All caught up. Keep solving to feed your next review cycle.")
            raise typer.Exit(0)

        while session.state is SessionState.PRESENTING:
            item = session.current
            console.print()
            display_item_front(item, session.completed + 1, session.total_due)

            action = Prompt.ask(
                "[dim]Enter to reveal, 's' to skip, 'q' to quit[/dim]",
                default="",
                show_default=False,
            ).strip().lower()
            if action == "q":
                break
            if action == "s":
                session.skip()
                continue

            display_reveal(session.reveal())

            rating = _ask_rating()
            review_notes = Prompt.ask("[dim]Notes (optional)[/dim]", default="", show_default=False).strip()
            try:
                outcome = session.rate(rating, notes=review_notes or None)
            except Conflict:
                console.print("[yellow]This problem changed elsewhere; reloading it.[/yellow]")
                session.reload_current()
                continue

            label = relative_label(outcome.days_until)
            console.print(
                f"[green]Next review {label.lower()}[/green] "
                f"({outcome.result.next_review_date:%Y-%m-%d}, ease {outcome.result.ease_factor:.2f})"
            )

    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")
    except RecallError as exc:
        _fail(exc)
    finally:
        store.close()

    _display_session_summary(session)


def _display_session_summary(session: ReviewSession) -> None:
    """Display end-of-session summary."""
    console.print("\n")
    console.print(Panel(
        f"[bold]Session Complete![/bold]\n\n"
        f"Reviewed: {session.completed}/{session.total_due}\n"
        f"Skipped: {session.skipped}\n"
        f"Remaining: {session.remaining}",
        title="Summary",
        border_style="green",
    ))


def _queue_table(title: str, entries) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("ID")
    table.add_column("Problem")
    table.add_column("Difficulty")
    table.add_column("When")
    for tiered in entries:
        submission: Submission = tiered.item.payload
        color = STYLES["tier"][tiered.tier.value]
        table.add_row(
            str(submission.id),
            submission.problem.title,
            style_difficulty(submission.problem),
            f"[{color}]{relative_label(tiered.day_offset)}[/{color}]",
        )
    return table


def _display_days(grouped: dict) -> None:
    """One table per calendar day of upcoming reviews."""
    console.print("\n[bold]Next 30 Days[/bold]")
    for day, entries in grouped.items():
        console.print(_queue_table(f"{day:%A %Y-%m-%d}", entries))


@app.command()
def schedule(
    view: str = typer.Option("focus", "--view", "-v", help="focus, 30days or all"),
    horizon: Optional[int] = typer.Option(None, "--horizon", min=0, help="Days in the load histogram"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """Show overdue, today, this-week and later reviews plus the upcoming load."""
    if view not in SCHEDULE_VIEWS:
        console.print(f"[red]Unknown view '{view}'. Use {', '.join(SCHEDULE_VIEWS)}.[/red]")
        raise typer.Exit(2)

    now = datetime.now()
    try:
        with _open_store() as store:
            items = [s.as_scheduled_item() for s in store.list_scheduled(_user(user))]
            policy = store.selector_policy
    except RecallError as exc:
        _fail(exc)

    result = classify_schedule(items, now, horizon, policy)

    counts = Table(show_header=False, box=None)
    counts.add_column("Tier", style="dim")
    counts.add_column("Count", style="bold")
    for tier, count in result.tier_counts().items():
        color = STYLES["tier"][tier]
        counts.add_row(f"[{color}]{tier.replace('_', ' ').title()}[/{color}]", str(count))
    console.print("\n[bold cyan]Review Schedule[/bold cyan]")
    console.print("=" * 40)
    console.print(counts)

    if view == "focus":
        listed = list(result.priority_queue)
    elif view == "30days":
        listed = result.within_days(30)
    else:
        listed = list(result.all_items)

    if listed and view == "30days":
        _display_days(result.group_by_day(listed))
    elif listed:
        console.print(_queue_table(f"Queue ({view})", listed))
    else:
        console.print("[green]Nothing queued in this view.[/green]")

    if result.load_by_day:
        peak = result.highest_load_day
        scale = max(peak.count, 1)
        load = Table(title=f"{len(result.load_by_day)}-Day Load")
        load.add_column("Day")
        load.add_column("Reviews", justify="right")
        load.add_column("")
        for entry in result.load_by_day:
            bar = "#" * round(entry.count / scale * 20)
            load.add_row(entry.day.strftime("%a %m-%d"), str(entry.count), f"[cyan]{bar}[/cyan]")
        console.print(load)
        if peak.count:
            console.print(f"[dim]Busiest day: {peak.day:%A %Y-%m-%d} ({peak.count} reviews)[/dim]")


@app.command()
def stats(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """Show review statistics and streaks."""
    settings = get_settings()
    user_id = _user(user)
    try:
        with _open_store() as store:
            db_stats = store.get_stats(user_id, datetime.now())
            history = store.list_reviews(user_id=user_id)
    except RecallError as exc:
        _fail(exc)

    summary = review_stats(history, pass_rating=settings.streak_pass_rating)

    console.print("\n[bold cyan]Review Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Problems logged", str(db_stats["total_submissions"]))
    table.add_row("Scheduled", str(db_stats["scheduled"]))
    table.add_row("Due now", str(db_stats["due_now"]))
    table.add_row("Reviewed today", str(db_stats["reviewed_today"]))
    table.add_row("Solved this week", str(db_stats["solved_this_week"]))
    table.add_row("Time solving", f"{db_stats['total_time_spent']} min")
    for label, count in db_stats["by_difficulty"].items():
        table.add_row(f"  {label}", str(count))
    table.add_row("Total reviews", str(summary.total_reviews))
    table.add_row("Average rating", f"{summary.average_rating:.1f}")
    table.add_row("Success rate", f"{summary.success_percent:.0f}%")
    table.add_row("Current streak", str(summary.streak))
    table.add_row("Best streak", str(summary.best_streak))

    console.print(table)


@app.command("list")
def list_solved(
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Match title or problem id"),
    difficulty: Optional[str] = typer.Option(None, "--difficulty", "-d", help="easy, medium or hard"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """List solved problems, most recent first."""
    level = _difficulty_level(difficulty) if difficulty else None
    try:
        with _open_store() as store:
            submissions = store.list_submissions(_user(user), search=search, difficulty=level)
    except RecallError as exc:
        _fail(exc)

    if not submissions:
        console.print("[yellow]No solved problems match.[/yellow]")
        return

    now = datetime.now()
    table = Table(title=f"Solved Problems ({len(submissions)})")
    table.add_column("ID")
    table.add_column("Problem")
    table.add_column("Difficulty")
    table.add_column("Solved")
    table.add_column("Next review")
    table.add_column("Reviews", justify="right")
    for submission in submissions:
        next_review = submission.schedule.next_review_date
        due = relative_label(calendar_days_between(next_review, now)) if next_review else "-"
        table.add_row(
            str(submission.id),
            f"{submission.problem.id}. {submission.problem.title}",
            style_difficulty(submission.problem),
            f"{submission.solved_at:%Y-%m-%d}",
            due,
            str(submission.schedule.review_count),
        )
    console.print(table)


@app.command()
def delete(
    submission_id: int = typer.Argument(..., help="Submission id to delete"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """Delete a logged problem together with its schedule and reviews."""
    if not confirm and not Confirm.ask(f"Delete submission #{submission_id}?", default=False):
        raise typer.Exit(0)

    try:
        with _open_store() as store:
            store.delete_submission(submission_id, _user(user))
    except RecallError as exc:
        _fail(exc)

    console.print(f"[green]Deleted submission #{submission_id}[/green]")


@app.command("user")
def set_user(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Address for review reminders"),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    notify: Optional[bool] = typer.Option(None, "--notify/--no-notify", help="Opt in or out of reminders"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
) -> None:
    """Set the reminder email, name and opt-in for a user."""
    user_id = _user(user)
    try:
        with _open_store() as store:
            try:
                current = store.get_user(user_id)
            except NotFound:
                current = User(id=user_id)
            updated = store.upsert_user(User(
                id=user_id,
                email=email if email is not None else current.email,
                name=name if name is not None else current.name,
                email_notifications=notify if notify is not None else current.email_notifications,
            ))
    except RecallError as exc:
        _fail(exc)

    reminders = "on" if updated.email_notifications else "off"
    console.print(
        f"[green]User {updated.id}[/green]: email {updated.email or '-'}, "
        f"name {updated.name or '-'}, reminders {reminders}"
    )


@app.command()
def remind() -> None:
    """Send reminders to every user with due reviews (logged, not emailed)."""
    settings = get_settings()
    if not settings.reminders_enabled:
        console.print("[yellow]Reminders are disabled.[/yellow]")
        raise typer.Exit(0)

    sender = LogReminderSender(preview_chars=settings.reminder_note_preview_chars)
    try:
        with _open_store() as store:
            summary = send_due_reminders(store, sender, datetime.now())
    except RecallError as exc:
        _fail(exc)

    console.print(
        f"[green]Processed {summary.users_processed} users: "
        f"{summary.emails_sent} sent, {summary.emails_failed} failed[/green]"
    )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="1 MB")

    app()


if __name__ == "__main__":
    main()
