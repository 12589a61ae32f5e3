"""Notification API endpoints.

Endpoints are plain ``def`` so FastAPI runs them in its threadpool: instant
dispatch pushes onto the event loop and must not block it.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import EngineDep
from app.models.notification import (
    NotificationCreate,
    NotificationKind,
    NotificationListResponse,
    NotificationResponse,
)

router = APIRouter(tags=["Notifications"])


@router.get(
    "/api/users/{user_id}/notifications",
    response_model=NotificationListResponse,
)
def list_notifications_endpoint(
    engine: EngineDep,
    user_id: UUID,
    unread_only: bool = Query(default=False, description="Only unread notifications"),
    kind: NotificationKind | None = Query(default=None, description="Filter by kind"),
    limit: int = Query(default=50, ge=1, le=200, description="Maximum number of notifications"),
) -> NotificationListResponse:
    """List a user's notifications, newest first."""
    notifications = engine.list_for_user(
        user_id, unread_only=unread_only, kind=kind, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=len(notifications),
    )


@router.post(
    "/api/users/{user_id}/notifications",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_notification_endpoint(
    engine: EngineDep,
    user_id: UUID,
    data: NotificationCreate,
) -> NotificationResponse:
    """Create a notification and deliver it right away."""
    if len(data.message.strip()) == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message cannot be empty",
        )
    notification = engine.create_instant_notification(
        user_id, data.message.strip(), kind=data.kind, task_id=data.task_id
    )
    return NotificationResponse.model_validate(notification)


@router.get("/api/users/{user_id}/notifications/unread-count")
def unread_count_endpoint(engine: EngineDep, user_id: UUID) -> dict[str, int]:
    """Number of unread notifications for a user."""
    return {"unread_count": engine.get_unread_count(user_id)}


@router.put("/api/users/{user_id}/notifications/read-all")
def mark_all_read_endpoint(engine: EngineDep, user_id: UUID) -> dict[str, int]:
    """Mark every notification of a user as read."""
    return {"updated": engine.mark_all_read(user_id)}


@router.get("/api/notifications/pending", response_model=NotificationListResponse)
def pending_notifications_endpoint(engine: EngineDep) -> NotificationListResponse:
    """Notifications that are due but have not been dispatched yet."""
    notifications = engine.list_pending()
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=len(notifications),
    )


@router.delete("/api/notifications/cleanup")
def cleanup_notifications_endpoint(
    engine: EngineDep,
    days: int | None = Query(default=None, ge=0, description="Delete read notifications older than this"),
) -> dict[str, int]:
    """Delete old read notifications."""
    return {"deleted": engine.cleanup_older_than(days)}


@router.put("/api/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_read_endpoint(engine: EngineDep, notification_id: UUID) -> NotificationResponse:
    """Mark one notification as read."""
    notification = engine.mark_read(notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return NotificationResponse.model_validate(notification)


@router.delete("/api/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification_endpoint(engine: EngineDep, notification_id: UUID) -> None:
    """Delete a notification."""
    if not engine.delete(notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
