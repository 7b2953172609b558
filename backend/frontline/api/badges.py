"""Badge count endpoint."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from frontline.api.deps import get_current_user, get_db, read_or_degrade
from frontline.models.user import User
from frontline.schemas.badge import BadgeCountsResponse
from frontline.services.badges import BadgeCounts, get_badge_counts

router = APIRouter(prefix="/badges", tags=["badges"])


@router.get("", response_model=BadgeCountsResponse)
def get_badges(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Unread messages, unread notifications and credentials needing attention."""
    counts, degraded = read_or_degrade(lambda: get_badge_counts(db, current_user.id), BadgeCounts())
    return BadgeCountsResponse(**counts.model_dump(), degraded=degraded)
