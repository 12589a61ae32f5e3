"""Environment configuration for the reminder engine."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.APP_URL: str = os.getenv("APP_URL", "http://localhost:8000")

        # Scheduler cadence
        self.SCHEDULER_ENABLED: bool = _env_bool("SCHEDULER_ENABLED", True)
        self.TICK_INTERVAL_SECONDS: int = int(os.getenv("TICK_INTERVAL_SECONDS", "60"))
        self.TICK_TIMEOUT_SECONDS: int = int(os.getenv("TICK_TIMEOUT_SECONDS", "50"))
        self.GUARD_FAILURE_ALERT_THRESHOLD: int = int(
            os.getenv("GUARD_FAILURE_ALERT_THRESHOLD", "3")
        )

        # Worker sizing
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "100"))
        self.DISPATCH_MAX_WORKERS: int = int(os.getenv("DISPATCH_MAX_WORKERS", "8"))
        self.CHANNEL_TIMEOUT_SECONDS: float = float(
            os.getenv("CHANNEL_TIMEOUT_SECONDS", "10")
        )

        # Reminder planning
        self.PLANNER_LOOKAHEAD_HOURS: int = int(os.getenv("PLANNER_LOOKAHEAD_HOURS", "168"))
        self.EMAIL_WINDOW_EXPLICIT_SECONDS: int = int(
            os.getenv("EMAIL_WINDOW_EXPLICIT_SECONDS", "60")
        )
        self.EMAIL_WINDOW_DERIVED_SECONDS: int = int(
            os.getenv("EMAIL_WINDOW_DERIVED_SECONDS", "900")
        )

        # Streaks and retention
        self.STREAK_RESET_ON_READ: bool = _env_bool("STREAK_RESET_ON_READ", True)
        self.NOTIFICATION_RETENTION_DAYS: int = int(
            os.getenv("NOTIFICATION_RETENTION_DAYS", "30")
        )

        # Email delivery (HTTP email API; simulated when no key is set)
        self.EMAIL_API_URL: str = os.getenv("EMAIL_API_URL", "https://api.resend.com/emails")
        self.EMAIL_API_KEY: str = os.getenv("EMAIL_API_KEY", "")
        self.EMAIL_FROM: str = os.getenv("EMAIL_FROM", "reminders@localhost")

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if self.TICK_INTERVAL_SECONDS <= 0:
            raise ValueError("TICK_INTERVAL_SECONDS must be positive")
        if self.CHANNEL_TIMEOUT_SECONDS <= 0:
            raise ValueError("CHANNEL_TIMEOUT_SECONDS must be positive")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
