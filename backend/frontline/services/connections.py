"""Connection requests between responders."""
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontline.clock import utcnow_iso
from frontline.errors import Conflict, NotFound, ValidationFailed, require_user, translate_db_errors
from frontline.models.connection import Connection, pair_key
from frontline.models.user import User
from frontline.services import notifications
from frontline.services.conversations import profile_summary
from frontline.services.events import ConnectionAccepted, ConnectionRequested

logger = logging.getLogger(__name__)

CONNECTED = "connected"
PENDING = "pending"
NONE = "none"


def _involving(user_id: str):
    return or_(Connection.user_id == user_id, Connection.connected_user_id == user_id)


@translate_db_errors()
def send_connection_request(db: Session, user_id: str, target_id: str) -> Connection:
    """Open a pending request from user_id to target_id.

    Any existing edge between the two, in either direction and in any status,
    is a Conflict.
    """
    require_user(user_id)
    if user_id == target_id:
        raise ValidationFailed("Cannot connect with yourself")
    if db.get(User, target_id) is None:
        raise NotFound("User not found")

    connection = Connection(
        user_id=user_id,
        connected_user_id=target_id,
        pair_key=pair_key(user_id, target_id),
        status="pending",
    )
    try:
        with db.begin_nested():
            db.add(connection)
    except IntegrityError as exc:
        raise Conflict("A connection or request already exists between these users") from exc

    notifications.emit(db, ConnectionRequested(actor_id=user_id, target_id=target_id))
    db.commit()
    db.refresh(connection)
    logger.info("Connection requested %s -> %s", user_id, target_id)
    return connection


@translate_db_errors()
def accept_connection(db: Session, user_id: str, connection_id: str) -> Connection:
    """Accept a pending request addressed to user_id."""
    require_user(user_id)
    updated = (
        db.query(Connection)
        .filter(
            Connection.id == connection_id,
            Connection.connected_user_id == user_id,
            Connection.status == "pending",
        )
        .update({"status": "accepted", "updated_at": utcnow_iso()}, synchronize_session=False)
    )

    connection = db.get(Connection, connection_id)
    if connection is None or connection.connected_user_id != user_id:
        db.rollback()
        raise NotFound("Connection request not found")
    if not updated:
        db.rollback()
        raise Conflict("Connection request is no longer pending")

    db.refresh(connection)
    notifications.emit(db, ConnectionAccepted(actor_id=user_id, requester_id=connection.user_id))
    db.commit()
    logger.info("Connection %s accepted by %s", connection_id, user_id)
    return connection


@translate_db_errors()
def decline_connection(db: Session, user_id: str, connection_id: str) -> None:
    """Decline a pending request addressed to user_id, or withdraw one user_id sent."""
    require_user(user_id)
    deleted = (
        db.query(Connection)
        .filter(
            Connection.id == connection_id,
            Connection.status == "pending",
            _involving(user_id),
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    if not deleted:
        raise NotFound("Connection request not found")


@translate_db_errors()
def check_connection(db: Session, user_id: str, other_id: str) -> str:
    """connected, pending or none, regardless of who asked first."""
    connection = db.query(Connection).filter(Connection.pair_key == pair_key(user_id, other_id)).first()
    if connection is None:
        return NONE
    return CONNECTED if connection.status == "accepted" else PENDING


@translate_db_errors()
def list_connections(db: Session, user_id: str) -> list[dict]:
    """Profiles of everyone user_id is connected with."""
    edges = db.query(Connection).filter(Connection.status == "accepted", _involving(user_id)).all()
    other_ids = [edge.other_party(user_id) for edge in edges]
    if not other_ids:
        return []
    users = db.query(User).filter(User.id.in_(other_ids)).order_by(User.full_name, User.username).all()
    return [profile_summary(user) for user in users]


@translate_db_errors()
def list_pending_requests(db: Session, user_id: str) -> list[dict]:
    """Requests waiting for user_id to answer, newest first."""
    require_user(user_id)
    pending = (
        db.query(Connection)
        .filter(Connection.connected_user_id == user_id, Connection.status == "pending")
        .order_by(Connection.created_at.desc())
        .all()
    )
    if not pending:
        return []

    profiles = {
        u.id: u
        for u in db.query(User).filter(User.id.in_([p.user_id for p in pending])).all()
    }
    return [
        {
            "id": request.id,
            "user_id": request.user_id,
            "created_at": request.created_at,
            "user": profile_summary(profiles[request.user_id]),
        }
        for request in pending
        if request.user_id in profiles
    ]


@translate_db_errors()
def count_connections(db: Session, user_id: str) -> int:
    return db.query(Connection).filter(Connection.status == "accepted", _involving(user_id)).count()
