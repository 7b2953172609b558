"""Content reports and admin moderation."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontline.clock import utcnow_iso
from frontline.errors import (
    Conflict,
    Forbidden,
    NotFound,
    ValidationFailed,
    require_user,
    translate_db_errors,
)
from frontline.models.post import Post
from frontline.models.report import REPORT_REASONS, REPORT_STATUSES, REPORT_TRANSITIONS, Report
from frontline.models.user import User
from frontline.services import posts
from frontline.services.blob_store import BlobStore, remove_blob_quietly
from frontline.services.conversations import profile_summary

logger = logging.getLogger(__name__)


def _require_admin(db: Session, user_id: str) -> User:
    require_user(user_id)
    user = db.get(User, user_id)
    if user is None or not user.is_admin:
        raise Forbidden("Admin access required")
    return user


@translate_db_errors()
def create_report(
    db: Session,
    user_id: str,
    post_id: str,
    reason: str,
    description: str | None = None,
) -> Report:
    """File a report. One report per (post, reporter)."""
    require_user(user_id)
    if reason not in REPORT_REASONS:
        raise ValidationFailed(f"Unknown report reason: {reason}")
    if db.get(Post, post_id) is None:
        raise NotFound("Post not found")

    report = Report(
        post_id=post_id,
        reporter_id=user_id,
        reason=reason,
        description=(description or "").strip() or None,
        status="pending",
    )
    try:
        db.add(report)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You have already reported this post") from exc

    db.refresh(report)
    logger.info("Report %s filed on post %s", report.id, post_id)
    return report


@translate_db_errors()
def update_report_status(
    db: Session,
    admin_id: str,
    report_id: str,
    status: str,
    admin_notes: str | None = None,
) -> Report:
    """Move a report forward. dismissed and action_taken are terminal."""
    _require_admin(db, admin_id)
    if status not in REPORT_TRANSITIONS:
        raise ValidationFailed(f"Cannot move a report to {status!r}")

    values = {"status": status, "reviewed_by": admin_id, "reviewed_at": utcnow_iso()}
    if admin_notes is not None:
        values["admin_notes"] = admin_notes
    updated = (
        db.query(Report)
        .filter(Report.id == report_id, Report.status.in_(REPORT_TRANSITIONS[status]))
        .update(values, synchronize_session=False)
    )
    db.commit()

    report = db.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found")
    if not updated:
        raise Conflict(f"Report is {report.status} and cannot become {status}")
    db.refresh(report)
    return report


@translate_db_errors()
def list_reports(db: Session, admin_id: str, status: str | None = None) -> list[dict]:
    """Reports newest first, with post, reporter and reviewer attached."""
    _require_admin(db, admin_id)
    query = db.query(Report)
    if status and status != "all":
        if status not in REPORT_STATUSES:
            raise ValidationFailed(f"Unknown report status: {status}")
        query = query.filter(Report.status == status)
    reports = query.order_by(Report.created_at.desc()).all()
    if not reports:
        return []

    post_rows = {p.id: p for p in db.query(Post).filter(Post.id.in_({r.post_id for r in reports})).all()}
    user_ids = {r.reporter_id for r in reports}
    user_ids |= {r.reviewed_by for r in reports if r.reviewed_by}
    user_ids |= {p.user_id for p in post_rows.values()}
    users = {u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()}

    def summary(user_id):
        user = users.get(user_id)
        return profile_summary(user) if user else None

    results = []
    for report in reports:
        post = post_rows.get(report.post_id)
        results.append({
            "id": report.id,
            "post_id": report.post_id,
            "reporter_id": report.reporter_id,
            "reason": report.reason,
            "description": report.description,
            "status": report.status,
            "admin_notes": report.admin_notes,
            "reviewed_by": report.reviewed_by,
            "reviewed_at": report.reviewed_at,
            "created_at": report.created_at,
            "post": (
                {
                    "id": post.id,
                    "content": post.content,
                    "user_id": post.user_id,
                    "created_at": post.created_at,
                    "author": summary(post.user_id),
                }
                if post
                else None
            ),
            "reporter": summary(report.reporter_id),
            "reviewer": summary(report.reviewed_by),
        })
    return results


@translate_db_errors()
def count_pending_reports(db: Session, admin_id: str) -> int:
    _require_admin(db, admin_id)
    return db.query(Report).filter(Report.status == "pending").count()


@translate_db_errors()
def delete_reported_post(
    db: Session,
    admin_id: str,
    report_id: str,
    blob_store: BlobStore | None = None,
) -> int:
    """Delete the reported post and close every open report on it as action_taken."""
    _require_admin(db, admin_id)
    report = db.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found")
    post_id = report.post_id

    image_path = None
    post = db.get(Post, post_id)
    if post is not None:
        image_path = posts.remove_post(db, post)

    closed = (
        db.query(Report)
        .filter(Report.post_id == post_id, Report.status.in_(REPORT_TRANSITIONS["action_taken"]))
        .update(
            {
                "status": "action_taken",
                "admin_notes": "Post deleted by admin",
                "reviewed_by": admin_id,
                "reviewed_at": utcnow_iso(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    remove_blob_quietly(blob_store, image_path)
    logger.info("Post %s removed via report %s; %d reports closed", post_id, report_id, closed)
    return closed
