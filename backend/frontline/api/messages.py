"""Direct message API endpoints."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_current_user, get_db, read_or_degrade
from frontline.models.user import User
from frontline.schemas.message import (
    ConversationListResponse,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
    ThreadResponse,
)
from frontline.services import conversations

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/conversations", response_model=ConversationListResponse)
def get_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Inbox: one row per counterpart, most recent first."""
    rows, degraded = read_or_degrade(lambda: conversations.list_conversations(db, current_user.id), [])
    return ConversationListResponse(conversations=rows, degraded=degraded)


@router.get("/unread-count")
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count, degraded = read_or_degrade(lambda: conversations.count_unread_messages(db, current_user.id), 0)
    return {"count": count, "degraded": degraded}


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    request: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = conversations.send_message(db, current_user.id, request.recipient_id, request.content)
    return conversations.serialize_message(message)


@router.get("/{counterpart_id}", response_model=ThreadResponse)
def get_thread(
    counterpart_id: str,
    limit: int | None = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Messages with one counterpart, oldest first."""
    rows, degraded = read_or_degrade(
        lambda: [
            conversations.serialize_message(m)
            for m in conversations.get_thread(db, current_user.id, counterpart_id, limit)
        ],
        [],
    )
    return ThreadResponse(messages=rows, degraded=degraded)


@router.post("/{counterpart_id}/read", response_model=MarkReadResponse)
def mark_thread_read(
    counterpart_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return MarkReadResponse(updated=conversations.mark_thread_read(db, current_user.id, counterpart_id))
