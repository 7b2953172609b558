"""Connection API endpoints."""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_current_user, get_db
from frontline.models.user import User
from frontline.schemas.profile import ProfileSummary
from frontline.schemas.social import (
    ConnectionRequest,
    ConnectionResponse,
    ConnectionStatusResponse,
    PendingRequestResponse,
)
from frontline.services import connections

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=list[ProfileSummary])
def list_connections(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return connections.list_connections(db, current_user.id)


@router.get("/pending", response_model=list[PendingRequestResponse])
def list_pending(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Requests waiting for the caller's answer."""
    return connections.list_pending_requests(db, current_user.id)


@router.get("/status/{user_id}", response_model=ConnectionStatusResponse)
def get_status(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ConnectionStatusResponse(status=connections.check_connection(db, current_user.id, user_id))


@router.get("/users/{user_id}/count")
def get_count(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": connections.count_connections(db, user_id)}


@router.post("", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
def send_request(
    request: ConnectionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return connections.send_connection_request(db, current_user.id, request.target_id)


@router.post("/{connection_id}/accept", response_model=ConnectionResponse)
def accept(
    connection_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return connections.accept_connection(db, current_user.id, connection_id)


@router.post("/{connection_id}/decline", status_code=status.HTTP_204_NO_CONTENT)
def decline(
    connection_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    connections.decline_connection(db, current_user.id, connection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
