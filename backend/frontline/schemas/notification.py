"""Notification schemas."""
from pydantic import BaseModel


class NotificationUser(BaseModel):
    id: str
    full_name: str
    avatar_url: str | None = None


class NotificationResponse(BaseModel):
    """A notification with the related user's profile attached."""
    
    id: int
    user_id: str
    type: str  # like, comment, connection, message, credential_expiring, credential_expired
    title: str
    description: str | None = None
    related_post_id: str | None = None
    related_user_id: str | None = None
    related_credential_id: str | None = None
    read: bool
    created_at: str
    related_user: NotificationUser | None = None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    degraded: bool = False


class NotificationUpdateResponse(BaseModel):
    updated: int
