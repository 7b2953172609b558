"""Badge counts shown in the app shell."""
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from frontline.errors import translate_db_errors
from frontline.models.message import Message
from frontline.models.notification import Notification
from frontline.services.conversations import count_unread_messages
from frontline.services.credentials import count_expiring_or_expired
from frontline.services.notifications import count_unread_notifications


class BadgeCounts(BaseModel):
    unread_messages: int = 0
    unread_notifications: int = 0
    expiring_credentials: int = 0


class BadgeSnapshot(BadgeCounts):
    """Counts plus the newest row ids they include, for merging later inserts."""

    last_message_id: int = 0
    last_notification_id: int = 0


def get_badge_counts(db: Session, user_id: str, now: datetime | None = None) -> BadgeCounts:
    return BadgeCounts(
        unread_messages=count_unread_messages(db, user_id),
        unread_notifications=count_unread_notifications(db, user_id),
        expiring_credentials=count_expiring_or_expired(db, user_id, now),
    )


@translate_db_errors()
def get_badge_snapshot(db: Session, user_id: str, now: datetime | None = None) -> BadgeSnapshot:
    # Same transaction as the counts, so inserts above the watermarks are exactly the uncounted ones
    last_message_id = (
        db.query(func.max(Message.id)).filter(Message.recipient_id == user_id).scalar() or 0
    )
    last_notification_id = (
        db.query(func.max(Notification.id)).filter(Notification.user_id == user_id).scalar() or 0
    )
    counts = get_badge_counts(db, user_id, now)
    return BadgeSnapshot(
        **counts.model_dump(),
        last_message_id=last_message_id,
        last_notification_id=last_notification_id,
    )
