"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from app.engine import ReminderEngine


def get_engine(request: Request) -> ReminderEngine:
    """Get the reminder engine built during application startup."""
    engine: ReminderEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reminder engine is not running",
        )
    return engine


EngineDep = Annotated[ReminderEngine, Depends(get_engine)]
