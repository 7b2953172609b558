"""Credential model."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from frontline.clock import utcnow, utcnow_iso
from frontline.database import Base


class Credential(Base):
    """A certification held by a responder.

    Status is not a column: it is derived from expiration_date and
    notification_days at read time (see services.credentials.credential_status).
    """
    
    __tablename__ = "credentials"
    __table_args__ = (
        Index("ix_credentials_user_expiration", "user_id", "expiration_date"),
    )
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credential_type = Column(String(50), nullable=False)  # NREMT, ACLS, RED_CARD, ...
    credential_name = Column(String(255), nullable=False)
    issuing_organization = Column(String(255))
    issue_date = Column(String(10))  # YYYY-MM-DD
    expiration_date = Column(String(10))  # YYYY-MM-DD, NULL = never expires
    credential_number = Column(String(100))
    notification_days = Column(Integer, default=90, nullable=False)
    # Bumped when an alerted credential is seen valid again, so its next
    # transition notifies afresh
    alert_generation = Column(Integer, default=0, nullable=False)
    is_public = Column(Integer, default=0)  # SQLite boolean
    is_verified = Column(Integer, default=0)  # SQLite boolean
    document_path = Column(String(500))  # blob store key
    notes = Column(Text)
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
    
    user = relationship("User", back_populates="credentials")

    def status_at(self, now: datetime | None = None) -> str:
        from frontline.services.credentials import credential_status

        return credential_status(self.expiration_date, self.notification_days, now or utcnow())

    @property
    def status(self) -> str:
        return self.status_at()
