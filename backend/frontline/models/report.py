"""Content report model."""
import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Text, UniqueConstraint

from frontline.clock import utcnow_iso
from frontline.database import Base

REPORT_REASONS = (
    "Spam",
    "Harassment or bullying",
    "Hate speech",
    "Violence or threats",
    "Misinformation",
    "Inappropriate content",
    "Impersonation",
    "Other",
)

# Allowed predecessors for each target status; dismissed/action_taken are terminal
REPORT_TRANSITIONS = {
    "reviewed": ("pending",),
    "dismissed": ("pending", "reviewed"),
    "action_taken": ("pending", "reviewed"),
}

REPORT_STATUSES = ("pending", "reviewed", "dismissed", "action_taken")


class Report(Base):
    """A user report against a post."""

    __tablename__ = "reports"
    __table_args__ = (
        UniqueConstraint("post_id", "reporter_id", name="uq_report_post_reporter"),
        Index("ix_reports_status_created", "status", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Kept after the post is deleted, so no foreign key
    post_id = Column(String(36), nullable=False, index=True)
    reporter_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String(100), nullable=False)
    description = Column(Text)
    status = Column(String(20), default="pending", nullable=False)
    admin_notes = Column(Text)
    reviewed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    reviewed_at = Column(String(26))
    created_at = Column(String(26), default=utcnow_iso)
