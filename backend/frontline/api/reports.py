"""Report and moderation API endpoints."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_blob_store, get_current_user, get_db
from frontline.models.user import User
from frontline.schemas.social import ReportCreate, ReportDetailResponse, ReportResponse, ReportStatusUpdate
from frontline.services import reports
from frontline.services.blob_store import BlobStore

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    request: ReportCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return reports.create_report(db, current_user.id, request.post_id, request.reason, request.description)


@router.get("", response_model=list[ReportDetailResponse])
def list_reports(
    status_filter: str | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Admin: reports newest first, optionally filtered by status."""
    return reports.list_reports(db, current_user.id, status=status_filter)


@router.get("/pending-count")
def get_pending_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": reports.count_pending_reports(db, current_user.id)}


@router.patch("/{report_id}", response_model=ReportResponse)
def update_status(
    report_id: str,
    request: ReportStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return reports.update_report_status(db, current_user.id, report_id, request.status, request.admin_notes)


@router.post("/{report_id}/delete-post")
def delete_reported_post(
    report_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Admin: remove the reported post and close its reports."""
    closed = reports.delete_reported_post(db, current_user.id, report_id, blob_store=blob_store)
    return {"success": True, "reports_closed": closed}
