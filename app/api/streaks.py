"""Streak API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.api.deps import EngineDep
from app.models.streak import StreakResponse, StreakStats, StreakUpdateResponse
from app.services.streaks import BackdatedActivityError

router = APIRouter(tags=["Streaks"])


@router.get("/api/users/{user_id}/streak", response_model=StreakResponse)
def get_streak_endpoint(engine: EngineDep, user_id: UUID) -> StreakResponse:
    """Get a user's streak, resetting it first if a day was missed."""
    return StreakResponse.model_validate(engine.get_streak(user_id))


@router.post("/api/users/{user_id}/streak/activity", response_model=StreakUpdateResponse)
def record_activity_endpoint(engine: EngineDep, user_id: UUID) -> StreakUpdateResponse:
    """Record activity for today."""
    try:
        update = engine.record_activity(user_id)
    except BackdatedActivityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    return StreakUpdateResponse(
        **StreakResponse.model_validate(update.state).model_dump(),
        streak_updated=update.streak_updated,
    )


@router.get("/api/streaks/stats", response_model=StreakStats)
def streak_stats_endpoint(engine: EngineDep) -> StreakStats:
    """Aggregate streak statistics."""
    return engine.get_streak_stats()
