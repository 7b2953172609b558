"""Notification fan-out and the owner-scoped notification inbox."""
import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontline.clock import utcnow_iso
from frontline.errors import NotFound, require_user, translate_db_errors
from frontline.models.notification import Notification
from frontline.models.post import Comment, Post
from frontline.models.user import User
from frontline.services.events import (
    ActivityEvent,
    ConnectionAccepted,
    ConnectionRequested,
    CredentialTransitioned,
    MessageSent,
    PostCommented,
    PostLiked,
)

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 80


def _snippet(text: str | None, length: int = SNIPPET_LENGTH) -> str | None:
    if not text:
        return None
    text = " ".join(text.split())
    return text if len(text) <= length else text[: length - 1].rstrip() + "…"


def _display_name(db: Session, user_id: str) -> str:
    user = db.get(User, user_id)
    return user.display_name if user else "Someone"


def format_date(value: str) -> str:
    """YYYY-MM-DD -> 'Jan 5, 2027'."""
    parsed = date.fromisoformat(value)
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


# ---------------------------------------------------------------------------
# Event -> notification drafts. Each returns the row values or None (no-op).
# ---------------------------------------------------------------------------

def _draft_post_liked(db: Session, event: PostLiked) -> dict | None:
    post = db.get(Post, event.post_id)
    if post is None:
        return None
    return {
        "user_id": post.user_id,
        "type": "like",
        "title": f"{_display_name(db, event.actor_id)} liked your post",
        "description": _snippet(post.content),
        "related_post_id": post.id,
        "related_user_id": event.actor_id,
    }


def _draft_post_commented(db: Session, event: PostCommented) -> dict | None:
    post = db.get(Post, event.post_id)
    comment = db.get(Comment, event.comment_id)
    if post is None or comment is None:
        return None

    actor_name = _display_name(db, event.actor_id)
    recipient_id = post.user_id
    title = f"{actor_name} commented on your post"
    if event.parent_id:
        parent = db.get(Comment, event.parent_id)
        if parent is not None and parent.user_id != event.actor_id:
            recipient_id = parent.user_id
            title = f"{actor_name} replied to your comment"

    return {
        "user_id": recipient_id,
        "type": "comment",
        "title": title,
        "description": _snippet(comment.content),
        "related_post_id": post.id,
        "related_user_id": event.actor_id,
    }


def _draft_connection_requested(db: Session, event: ConnectionRequested) -> dict | None:
    return {
        "user_id": event.target_id,
        "type": "connection",
        "title": f"{_display_name(db, event.actor_id)} wants to connect",
        "description": "Respond to the connection request",
        "related_user_id": event.actor_id,
    }


def _draft_connection_accepted(db: Session, event: ConnectionAccepted) -> dict | None:
    return {
        "user_id": event.requester_id,
        "type": "connection",
        "title": f"{_display_name(db, event.actor_id)} accepted your connection request",
        "description": "You are now connected",
        "related_user_id": event.actor_id,
    }


def _draft_message_sent(db: Session, event: MessageSent) -> dict | None:
    return {
        "user_id": event.recipient_id,
        "type": "message",
        "title": f"New message from {_display_name(db, event.actor_id)}",
        "description": _snippet(event.preview),
        "related_user_id": event.actor_id,
    }


def _draft_credential_transitioned(db: Session, event: CredentialTransitioned) -> dict | None:
    when = format_date(event.expiration_date)
    if event.status == "expired":
        notification_type = "credential_expired"
        title = f"{event.credential_name} has expired"
        description = f"Your {event.credential_name} credential expired on {when}"
    else:
        notification_type = "credential_expiring"
        title = f"{event.credential_name} expires soon"
        description = f"Your {event.credential_name} credential expires on {when}"
    return {
        "user_id": event.owner_id,
        "type": notification_type,
        "title": title,
        "description": description,
        "related_credential_id": event.credential_id,
        "related_expiration_date": event.expiration_date,
        "related_alert_generation": event.generation,
    }


_DRAFTERS = {
    "post_liked": _draft_post_liked,
    "post_commented": _draft_post_commented,
    "connection_requested": _draft_connection_requested,
    "connection_accepted": _draft_connection_accepted,
    "message_sent": _draft_message_sent,
    "credential_transitioned": _draft_credential_transitioned,
}


def _find_duplicate(db: Session, draft: dict) -> Notification | None:
    """The existing row that makes ``draft`` redundant, per notification type."""
    query = db.query(Notification)
    if draft["type"] == "like":
        query = query.filter(
            Notification.user_id == draft["user_id"],
            Notification.type == "like",
            Notification.related_post_id == draft["related_post_id"],
            Notification.related_user_id == draft["related_user_id"],
            Notification.read == 0,
        )
    elif draft["type"] == "message":
        query = query.filter(
            Notification.user_id == draft["user_id"],
            Notification.type == "message",
            Notification.related_user_id == draft["related_user_id"],
            Notification.read == 0,
        )
    elif draft.get("related_credential_id"):
        # Read or dismissed markers still count: one alert per transition
        query = query.filter(
            Notification.related_credential_id == draft["related_credential_id"],
            Notification.type == draft["type"],
            Notification.related_expiration_date == draft["related_expiration_date"],
            Notification.related_alert_generation == draft["related_alert_generation"],
        )
    else:
        return None
    return query.first()


def emit(db: Session, event: ActivityEvent) -> Notification | None:
    """Turn a domain event into a notification for its recipient.

    Runs inside the caller's transaction and does not commit. Returns None when
    the event produces nothing: the recipient is the actor, the target is gone,
    or an equivalent unread notification already exists.
    """
    draft = _DRAFTERS[event.kind](db, event)
    if draft is None:
        return None

    actor_id = getattr(event, "actor_id", None)
    if actor_id is not None and draft["user_id"] == actor_id:
        return None

    if _find_duplicate(db, draft) is not None:
        logger.debug("Suppressed duplicate %s notification for %s", draft["type"], draft["user_id"])
        return None

    notification = Notification(**draft)
    try:
        with db.begin_nested():
            db.add(notification)
    except IntegrityError:
        # A concurrent writer inserted the same notification first
        logger.info("Dedup race absorbed for %s notification to %s", draft["type"], draft["user_id"])
        return None

    logger.info("Notification %s (%s) -> %s", notification.id, notification.type, notification.user_id)
    return notification


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

def _visible(db: Session, user_id: str):
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.dismissed == 0,
    )


def serialize_notification(notification: Notification, related_user: User | None = None) -> dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "description": notification.description,
        "related_post_id": notification.related_post_id,
        "related_user_id": notification.related_user_id,
        "related_credential_id": notification.related_credential_id,
        "read": bool(notification.read),
        "created_at": notification.created_at,
        "related_user": (
            {
                "id": related_user.id,
                "full_name": related_user.display_name,
                "avatar_url": related_user.avatar_url,
            }
            if related_user
            else None
        ),
    }


@translate_db_errors()
def list_notifications(
    db: Session,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> list[dict]:
    """Newest first, with the related user's profile attached."""
    require_user(user_id)
    query = _visible(db, user_id)
    if unread_only:
        query = query.filter(Notification.read == 0)
    notifications = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )

    related_ids = {n.related_user_id for n in notifications if n.related_user_id}
    profiles = {}
    if related_ids:
        profiles = {u.id: u for u in db.query(User).filter(User.id.in_(related_ids)).all()}

    return [serialize_notification(n, profiles.get(n.related_user_id)) for n in notifications]


@translate_db_errors()
def count_unread_notifications(db: Session, user_id: str) -> int:
    require_user(user_id)
    return _visible(db, user_id).filter(Notification.read == 0).count()


@translate_db_errors()
def mark_notification_read(db: Session, user_id: str, notification_id: int) -> bool:
    """Mark one of the caller's notifications read. True if it changed."""
    require_user(user_id)
    now = utcnow_iso()
    updated = (
        _visible(db, user_id)
        .filter(Notification.id == notification_id, Notification.read == 0)
        .update({"read": 1, "read_at": now}, synchronize_session=False)
    )
    db.commit()
    if updated:
        return True
    if _visible(db, user_id).filter(Notification.id == notification_id).first() is None:
        raise NotFound("Notification not found")
    return False


@translate_db_errors()
def mark_all_read(db: Session, user_id: str) -> int:
    require_user(user_id)
    updated = (
        _visible(db, user_id)
        .filter(Notification.read == 0)
        .update({"read": 1, "read_at": utcnow_iso()}, synchronize_session=False)
    )
    db.commit()
    return updated


def _dismiss(query, now: str) -> int:
    return query.update(
        {
            "dismissed": 1,
            "dismissed_at": now,
            "read": 1,
            "read_at": func.coalesce(Notification.read_at, now),
        },
        synchronize_session=False,
    )


@translate_db_errors()
def delete_notification(db: Session, user_id: str, notification_id: int) -> None:
    """Remove one notification from the caller's inbox."""
    require_user(user_id)
    updated = _dismiss(_visible(db, user_id).filter(Notification.id == notification_id), utcnow_iso())
    db.commit()
    if not updated:
        raise NotFound("Notification not found")


@translate_db_errors()
def clear_all(db: Session, user_id: str) -> int:
    """Remove every notification from the caller's inbox."""
    require_user(user_id)
    cleared = _dismiss(_visible(db, user_id), utcnow_iso())
    db.commit()
    return cleared
