"""Clock abstraction so the scheduler and streak tracker can be driven in tests."""

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    """Source of the current time (naive UTC)."""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock in naive UTC, matching the timestamps stored by the models."""

    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return self.now().date()
