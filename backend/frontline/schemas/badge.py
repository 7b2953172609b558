"""Badge count schemas."""
from pydantic import BaseModel


class BadgeCountsResponse(BaseModel):
    unread_messages: int
    unread_notifications: int
    expiring_credentials: int
    degraded: bool = False
