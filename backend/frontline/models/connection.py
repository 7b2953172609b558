"""Connection (follow/network) model."""
import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String

from frontline.clock import utcnow_iso
from frontline.database import Base


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the unordered pair {user_a, user_b}."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class Connection(Base):
    """Directed request edge; one row per pair, symmetric once accepted."""

    __tablename__ = "connections"
    __table_args__ = (
        CheckConstraint("user_id <> connected_user_id", name="ck_connections_not_self"),
        Index("ix_connections_addressee_status", "connected_user_id", "status"),
        Index("ix_connections_requester_status", "user_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # requester
    connected_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # addressee
    # Unique across both directions, so A->B and B->A can't coexist
    pair_key = Column(String(80), unique=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)

    def other_party(self, user_id: str) -> str:
        return self.connected_user_id if self.user_id == user_id else self.user_id
