"""Credential schemas."""
from datetime import date

from pydantic import BaseModel, Field


class CredentialBase(BaseModel):
    credential_type: str = Field(..., min_length=1, max_length=50)
    credential_name: str = Field(..., min_length=1, max_length=255)
    issuing_organization: str | None = None
    issue_date: date | None = None
    expiration_date: date | None = None  # None = never expires
    credential_number: str | None = None
    notification_days: int | None = Field(None, ge=0, le=3650)
    is_public: bool = False
    notes: str | None = None


class CredentialCreate(CredentialBase):
    """Create-credential request."""


class CredentialUpdate(BaseModel):
    """Partial update; only fields that are sent change."""
    
    credential_type: str | None = Field(None, min_length=1, max_length=50)
    credential_name: str | None = Field(None, min_length=1, max_length=255)
    issuing_organization: str | None = None
    issue_date: date | None = None
    expiration_date: date | None = None
    credential_number: str | None = None
    notification_days: int | None = Field(None, ge=0, le=3650)
    is_public: bool | None = None
    notes: str | None = None


class CredentialResponse(BaseModel):
    """A credential with its status derived at read time."""
    
    id: str
    user_id: str
    credential_type: str
    credential_name: str
    issuing_organization: str | None = None
    issue_date: str | None = None
    expiration_date: str | None = None
    credential_number: str | None = None
    notification_days: int
    is_public: bool
    is_verified: bool
    document_path: str | None = None
    notes: str | None = None
    status: str  # valid, expiring_soon, expired
    created_at: str
    
    class Config:
        from_attributes = True


class CredentialCountsResponse(BaseModel):
    valid: int
    expiring_soon: int
    expired: int
    total: int


class SweepResponse(BaseModel):
    created: int
