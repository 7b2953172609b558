"""Direct message model."""
from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text

from frontline.clock import utcnow_iso
from frontline.database import Base


class Message(Base):
    """A direct message. Immutable except for the recipient-owned read flag."""

    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_self"),
        Index("ix_messages_recipient_unread", "recipient_id", "read"),
        Index("ix_messages_sender_created", "sender_id", "created_at"),
        Index("ix_messages_recipient_created", "recipient_id", "created_at"),
    )

    # Autoincrement id doubles as insertion order for timestamp ties
    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    read = Column(Integer, default=0, nullable=False)  # SQLite boolean, 0 -> 1 only
    created_at = Column(String(26), default=utcnow_iso, nullable=False)

    def counterpart_of(self, user_id: str) -> str:
        return self.recipient_id if self.sender_id == user_id else self.sender_id
