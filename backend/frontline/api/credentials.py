"""Credential API endpoints."""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_blob_store, get_current_user, get_db
from frontline.config import get_settings
from frontline.models.user import User
from frontline.schemas.credential import (
    CredentialCountsResponse,
    CredentialCreate,
    CredentialResponse,
    CredentialUpdate,
    SweepResponse,
)
from frontline.services import credentials
from frontline.services.blob_store import BlobStore

router = APIRouter(prefix="/credentials", tags=["credentials"])
settings = get_settings()


@router.get("", response_model=list[CredentialResponse])
def list_credentials(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """All of the caller's credentials, soonest expiration first."""
    return credentials.list_credentials(db, current_user.id)


@router.get("/counts", response_model=CredentialCountsResponse)
def get_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return credentials.get_credential_counts(db, current_user.id)


@router.get("/expiring", response_model=list[CredentialResponse])
def list_expiring(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Credentials that need attention: expiring soon or already expired."""
    return credentials.list_expiring_credentials(db, current_user.id)


@router.post("/sweep", response_model=SweepResponse)
def sweep_mine(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Check the caller's credentials now instead of waiting for the scheduler."""
    return SweepResponse(created=credentials.sweep_credentials(db, user_id=current_user.id))


@router.get("/users/{user_id}/public", response_model=list[CredentialResponse])
def list_public(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return credentials.list_public_credentials(db, user_id)


@router.post("", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
def create_credential(
    request: CredentialCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return credentials.create_credential(
        db,
        current_user.id,
        request.model_dump(exclude_unset=True),
        default_notification_days=settings.default_notification_days,
    )


@router.get("/{credential_id}", response_model=CredentialResponse)
def get_credential(
    credential_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return credentials.get_credential(db, current_user.id, credential_id)


@router.patch("/{credential_id}", response_model=CredentialResponse)
def update_credential(
    credential_id: str,
    request: CredentialUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return credentials.update_credential(db, current_user.id, credential_id, request.model_dump(exclude_unset=True))


@router.delete("/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_credential(
    credential_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    credentials.delete_credential(db, current_user.id, credential_id, blob_store=blob_store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
