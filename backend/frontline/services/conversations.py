"""Conversation aggregation over direct messages."""
import logging

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from frontline.errors import NotFound, ValidationFailed, require_user, translate_db_errors
from frontline.models.message import Message
from frontline.models.user import User
from frontline.services import notifications
from frontline.services.events import MessageSent

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def profile_summary(user: User) -> dict:
    return {
        "id": user.id,
        "full_name": user.display_name,
        "avatar_url": user.avatar_url,
        "role": user.role,
    }


def serialize_message(message: Message) -> dict:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "read": bool(message.read),
        "created_at": message.created_at,
    }


def _between(user_id: str, counterpart_id: str):
    return or_(
        and_(Message.sender_id == user_id, Message.recipient_id == counterpart_id),
        and_(Message.sender_id == counterpart_id, Message.recipient_id == user_id),
    )


@translate_db_errors()
def list_conversations(db: Session, user_id: str) -> list[dict]:
    """One entry per counterpart, most recent conversation first.

    The preview is the latest message in either direction (created_at, then
    id). unread_count counts only messages the counterpart sent to user_id.
    """
    require_user(user_id)

    messages = (
        db.query(Message)
        .filter(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )
    if not messages:
        return []

    latest: dict[str, Message] = {}
    for message in messages:
        latest.setdefault(message.counterpart_of(user_id), message)

    unread = dict(
        db.query(Message.sender_id, func.count(Message.id))
        .filter(Message.recipient_id == user_id, Message.read == 0)
        .group_by(Message.sender_id)
        .all()
    )
    profiles = {u.id: u for u in db.query(User).filter(User.id.in_(latest.keys())).all()}

    conversations = []
    # dict order follows the query, so the newest conversation comes first
    for counterpart_id, message in latest.items():
        profile = profiles.get(counterpart_id)
        if profile is None:
            continue
        conversations.append({
            "user": profile_summary(profile),
            "last_message": serialize_message(message),
            "unread_count": unread.get(counterpart_id, 0),
        })
    return conversations


@translate_db_errors()
def get_thread(db: Session, user_id: str, counterpart_id: str, limit: int | None = None) -> list[Message]:
    """Messages between the two users, oldest first. ``limit`` keeps the newest."""
    require_user(user_id)
    query = db.query(Message).filter(_between(user_id, counterpart_id))
    if limit is None:
        return query.order_by(Message.created_at, Message.id).all()

    newest = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
    return list(reversed(newest))


@translate_db_errors()
def mark_thread_read(db: Session, user_id: str, counterpart_id: str) -> int:
    """Mark everything counterpart_id sent to user_id as read. Idempotent."""
    require_user(user_id)
    updated = (
        db.query(Message)
        .filter(
            Message.sender_id == counterpart_id,
            Message.recipient_id == user_id,
            Message.read == 0,
        )
        .update({"read": 1}, synchronize_session=False)
    )
    db.commit()
    return updated


@translate_db_errors()
def count_unread_messages(db: Session, user_id: str) -> int:
    require_user(user_id)
    return (
        db.query(func.count(Message.id))
        .filter(Message.recipient_id == user_id, Message.read == 0)
        .scalar()
    )


@translate_db_errors()
def send_message(db: Session, sender_id: str, recipient_id: str, content: str) -> Message:
    """Insert a message and notify the recipient in the same transaction."""
    require_user(sender_id)
    content = (content or "").strip()
    if not content:
        raise ValidationFailed("Message content must not be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(f"Message content must be at most {MAX_MESSAGE_LENGTH} characters")
    if recipient_id == sender_id:
        raise ValidationFailed("Cannot send a message to yourself")
    if db.get(User, recipient_id) is None:
        raise NotFound("Recipient not found")

    message = Message(sender_id=sender_id, recipient_id=recipient_id, content=content)
    db.add(message)
    db.flush()

    notifications.emit(
        db,
        MessageSent(
            actor_id=sender_id,
            recipient_id=recipient_id,
            message_id=message.id,
            preview=content,
        ),
    )
    db.commit()
    db.refresh(message)
    logger.info("Message %s sent %s -> %s", message.id, sender_id, recipient_id)
    return message
