"""Notification API endpoints."""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_current_user, get_db, read_or_degrade
from frontline.config import get_settings
from frontline.models.user import User
from frontline.schemas.notification import NotificationListResponse, NotificationUpdateResponse
from frontline.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])
settings = get_settings()


@router.get("", response_model=NotificationListResponse)
def get_notifications(
    unread_only: bool = False,
    limit: int | None = Query(None, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get user's notifications, newest first."""
    rows, degraded = read_or_degrade(
        lambda: notifications.list_notifications(
            db,
            current_user.id,
            unread_only=unread_only,
            limit=limit or settings.notification_list_limit,
        ),
        [],
    )
    return NotificationListResponse(notifications=rows, degraded=degraded)


@router.get("/unread-count")
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count, degraded = read_or_degrade(lambda: notifications.count_unread_notifications(db, current_user.id), 0)
    return {"count": count, "degraded": degraded}


@router.post("/read-all", response_model=NotificationUpdateResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return NotificationUpdateResponse(updated=notifications.mark_all_read(db, current_user.id))


@router.post("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark a notification as read."""
    changed = notifications.mark_notification_read(db, current_user.id, notification_id)
    return {"success": True, "changed": changed}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notifications.delete_notification(db, current_user.id, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", response_model=NotificationUpdateResponse)
def clear_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Clear the caller's inbox."""
    return NotificationUpdateResponse(updated=notifications.clear_all(db, current_user.id))
