"""
Configuration settings for leet-recall.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    state_db_path: Path = Field(
        default=Path.home() / ".leet-recall" / "state.db",
        description="SQLite database holding problems, submissions and reviews",
    )

    # ========================================
    # SM-2 Scheduler
    # ========================================
    initial_ease_factor: float = Field(
        default=2.5,
        description="Ease factor assigned on first schedule",
    )
    minimum_ease_factor: float = Field(
        default=1.3,
        description="Floor for the ease factor (no ceiling)",
    )
    first_interval_days: int = Field(
        default=1,
        description="Interval after the first review, and after any reset",
    )
    second_interval_days: int = Field(
        default=6,
        description="Interval after the second review",
    )
    passing_quality: int = Field(
        default=3,
        description="Zero-based quality below which the interval resets (rating 1-3)",
    )
    perfect_recall_bonus: float = Field(
        default=1.3,
        description="Extra interval multiplier for a rating of 5",
    )
    max_interval_days: int = Field(
        default=365,
        description="Upper cap on any interval",
    )

    # ========================================
    # Due-Set Selector
    # ========================================
    solve_grace_hours: int = Field(
        default=24,
        description="Hours after solving before an unscheduled problem becomes due",
    )
    week_horizon_days: int = Field(
        default=7,
        description="Upper bound (inclusive) of the due-this-week tier",
    )
    load_horizon_days: int = Field(
        default=14,
        description="Days covered by the load histogram",
    )

    # ========================================
    # Stats & Session
    # ========================================
    streak_pass_rating: int = Field(
        default=3,
        description="Minimum rating that keeps a review streak alive",
    )
    session_limit: int = Field(
        default=100,
        description="Maximum due items fetched per queue refresh",
    )
    default_user_id: str = Field(
        default="local",
        description="User id the CLI acts as when --user is not given",
    )

    # ========================================
    # Reminders
    # ========================================
    reminders_enabled: bool = Field(
        default=True,
        description="Allow the reminder job to dispatch digests",
    )
    reminder_note_preview_chars: int = Field(
        default=100,
        description="Characters of saved notes included per problem in a digest",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def get_scheduler_config(self) -> dict[str, Any]:
        """Keyword arguments for SchedulerPolicy."""
        return {
            "initial_ease_factor": self.initial_ease_factor,
            "minimum_ease_factor": self.minimum_ease_factor,
            "first_interval": self.first_interval_days,
            "second_interval": self.second_interval_days,
            "passing_quality": self.passing_quality,
            "perfect_recall_bonus": self.perfect_recall_bonus,
            "max_interval": self.max_interval_days,
        }

    def get_selector_config(self) -> dict[str, int]:
        return {
            "solve_grace_hours": self.solve_grace_hours,
            "week_horizon_days": self.week_horizon_days,
            "load_horizon_days": self.load_horizon_days,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
