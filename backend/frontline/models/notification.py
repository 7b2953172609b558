"""Notification model for activity and credential alerts."""
from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from frontline.clock import utcnow_iso
from frontline.database import Base

NOTIFICATION_TYPES = (
    "like",
    "comment",
    "connection",
    "message",
    "credential_expiring",
    "credential_expired",
)

_UNREAD_LIKE = text("type = 'like' AND read = 0")
_UNREAD_MESSAGE = text("type = 'message' AND read = 0")
_CREDENTIAL_ALERT = text("related_credential_id IS NOT NULL")


class Notification(Base):
    """A notification owned by exactly one recipient."""
    
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "read"),
        Index("ix_notifications_created", "user_id", "created_at"),
        # At most one unread like per (recipient, post, actor)
        Index(
            "uq_notifications_unread_like",
            "user_id", "related_post_id", "related_user_id",
            unique=True,
            sqlite_where=_UNREAD_LIKE,
            postgresql_where=_UNREAD_LIKE,
        ),
        # At most one unread message notification per (recipient, sender)
        Index(
            "uq_notifications_unread_message",
            "user_id", "related_user_id",
            unique=True,
            sqlite_where=_UNREAD_MESSAGE,
            postgresql_where=_UNREAD_MESSAGE,
        ),
        # Persisted transition marker for the credential monitor
        Index(
            "uq_notifications_credential_transition",
            "related_credential_id", "type", "related_expiration_date", "related_alert_generation",
            unique=True,
            sqlite_where=_CREDENTIAL_ALERT,
            postgresql_where=_CREDENTIAL_ALERT,
        ),
    )
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    
    # One of NOTIFICATION_TYPES; decides which related ids are set
    type = Column(String(50), nullable=False)
    
    # Content
    title = Column(String(255), nullable=False)
    description = Column(Text)
    
    # Click-through context
    related_post_id = Column(String(36))
    related_user_id = Column(String(36))
    related_credential_id = Column(String(36))
    related_expiration_date = Column(String(10))  # YYYY-MM-DD the alert was raised for
    related_alert_generation = Column(Integer)  # credential alert_generation at the time
    
    # Status
    read = Column(Integer, default=0, nullable=False)  # SQLite boolean
    read_at = Column(String(26))
    dismissed = Column(Integer, default=0, nullable=False)  # SQLite boolean
    dismissed_at = Column(String(26))
    
    # Timestamps
    created_at = Column(String(26), default=utcnow_iso, nullable=False)

    user = relationship("User", back_populates="notifications", foreign_keys=[user_id])
