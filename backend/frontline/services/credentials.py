"""Credential expiration monitor and credential CRUD."""
import logging
from datetime import date, datetime

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from frontline.clock import as_naive_utc, start_of_day, utcnow
from frontline.errors import NotFound, ValidationFailed, require_user, translate_db_errors
from frontline.models.credential import Credential
from frontline.models.notification import Notification
from frontline.services import notifications
from frontline.services.blob_store import BlobStore, remove_blob_quietly
from frontline.services.events import CredentialTransitioned

logger = logging.getLogger(__name__)

VALID = "valid"
EXPIRING_SOON = "expiring_soon"
EXPIRED = "expired"

EDITABLE_FIELDS = (
    "credential_type",
    "credential_name",
    "issuing_organization",
    "issue_date",
    "expiration_date",
    "credential_number",
    "notification_days",
    "is_public",
    "is_verified",
    "document_path",
    "notes",
)


def _expiration_instant(value: str | date | datetime) -> datetime:
    if isinstance(value, str):
        value = isoparse(value) if len(value) > 10 else isoparse(value).date()
    if isinstance(value, datetime):
        return as_naive_utc(value)
    return start_of_day(value)


def credential_status(
    expiration_date: str | date | datetime | None,
    notification_days: int | None,
    now: datetime,
) -> str:
    """valid, expiring_soon or expired at ``now``.

    A date-only expiration means 00:00 UTC of that day. Both window ends are
    inclusive: expiring exactly at ``now`` is expiring_soon, not expired.
    """
    if not expiration_date:
        return VALID

    now = as_naive_utc(now)
    expires = _expiration_instant(expiration_date)
    if expires < now:
        return EXPIRED
    if expires <= now + relativedelta(days=notification_days or 0):
        return EXPIRING_SOON
    return VALID


def _normalize_date(value: str | date | None, field: str) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return isoparse(value).date().isoformat()
    except ValueError as exc:
        raise ValidationFailed(f"{field} must be a YYYY-MM-DD date") from exc


def evaluate_credential(db: Session, credential: Credential, now: datetime | None = None) -> Notification | None:
    """Notify the owner the first time a credential is seen expiring or expired.

    The notification itself is the marker: one per (credential, status,
    expiration date, alert generation). Seeing an alerted credential valid
    again starts a new generation, so a later degrade is a new transition.
    Does not commit.
    """
    status = credential.status_at(now or utcnow())
    generation = credential.alert_generation or 0
    if status == VALID:
        if _has_alert(db, credential.id, generation):
            credential.alert_generation = generation + 1
            logger.debug("Credential %s re-armed at generation %d", credential.id, generation + 1)
        return None

    return notifications.emit(
        db,
        CredentialTransitioned(
            owner_id=credential.user_id,
            credential_id=credential.id,
            credential_name=credential.credential_name,
            status=status,
            expiration_date=credential.expiration_date,
            generation=generation,
        ),
    )


def _has_alert(db: Session, credential_id: str, generation: int) -> bool:
    marker = (
        db.query(Notification.id)
        .filter(
            Notification.related_credential_id == credential_id,
            Notification.related_alert_generation == generation,
        )
        .first()
    )
    return marker is not None


@translate_db_errors()
def sweep_credentials(db: Session, now: datetime | None = None, user_id: str | None = None) -> int:
    """Evaluate every credential with an expiration date. Returns notifications created."""
    now = now or utcnow()
    query = db.query(Credential).filter(Credential.expiration_date.isnot(None))
    if user_id:
        query = query.filter(Credential.user_id == user_id)

    created = 0
    for credential in query.all():
        if evaluate_credential(db, credential, now) is not None:
            created += 1
    db.commit()

    logger.info("Credential sweep%s created %d notifications", f" for {user_id}" if user_id else "", created)
    return created


def _owned(db: Session, user_id: str):
    return db.query(Credential).filter(Credential.user_id == user_id)


@translate_db_errors()
def get_credential_counts(db: Session, user_id: str, now: datetime | None = None) -> dict:
    """Counts per status, public and private alike."""
    require_user(user_id)
    now = now or utcnow()
    counts = {VALID: 0, EXPIRING_SOON: 0, EXPIRED: 0}
    for credential in _owned(db, user_id).all():
        counts[credential.status_at(now)] += 1
    counts["total"] = sum(counts.values())
    return counts


def count_expiring_or_expired(db: Session, user_id: str, now: datetime | None = None) -> int:
    counts = get_credential_counts(db, user_id, now)
    return counts[EXPIRING_SOON] + counts[EXPIRED]


@translate_db_errors()
def list_expiring_credentials(db: Session, user_id: str, now: datetime | None = None) -> list[Credential]:
    """The caller's expiring_soon and expired credentials, soonest expiration first."""
    require_user(user_id)
    now = now or utcnow()
    dated = (
        _owned(db, user_id)
        .filter(Credential.expiration_date.isnot(None))
        .order_by(Credential.expiration_date, Credential.created_at)
        .all()
    )
    return [c for c in dated if c.status_at(now) != VALID]


@translate_db_errors()
def list_credentials(db: Session, user_id: str) -> list[Credential]:
    """The caller's credentials, soonest expiration first, non-expiring last."""
    require_user(user_id)
    return (
        _owned(db, user_id)
        .order_by(Credential.expiration_date.is_(None), Credential.expiration_date, Credential.created_at)
        .all()
    )


@translate_db_errors()
def list_public_credentials(db: Session, user_id: str, now: datetime | None = None) -> list[Credential]:
    """Credentials ``user_id`` shows on their profile: public and currently valid."""
    now = now or utcnow()
    public = (
        db.query(Credential)
        .filter(Credential.user_id == user_id, Credential.is_public == 1)
        .order_by(Credential.credential_name)
        .all()
    )
    return [c for c in public if c.status_at(now) == VALID]


def _apply_fields(credential: Credential, values: dict) -> None:
    for field in EDITABLE_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if field == "notification_days" and value is None:
            continue
        if field in ("issue_date", "expiration_date"):
            value = _normalize_date(value, field)
        elif field in ("is_public", "is_verified"):
            value = 1 if value else 0
        setattr(credential, field, value)

    if not (credential.credential_name or "").strip():
        raise ValidationFailed("credential_name is required")
    if not (credential.credential_type or "").strip():
        raise ValidationFailed("credential_type is required")
    if credential.notification_days is not None and credential.notification_days < 0:
        raise ValidationFailed("notification_days must not be negative")


@translate_db_errors()
def create_credential(
    db: Session,
    user_id: str,
    values: dict,
    now: datetime | None = None,
    default_notification_days: int = 90,
) -> Credential:
    require_user(user_id)
    credential = Credential(user_id=user_id, notification_days=default_notification_days)
    _apply_fields(credential, values)
    db.add(credential)
    db.flush()
    evaluate_credential(db, credential, now)
    db.commit()
    db.refresh(credential)
    logger.info("Credential %s created for %s", credential.id, user_id)
    return credential


@translate_db_errors()
def get_credential(db: Session, user_id: str, credential_id: str) -> Credential:
    require_user(user_id)
    credential = _owned(db, user_id).filter(Credential.id == credential_id).first()
    if credential is None:
        raise NotFound("Credential not found")
    return credential


@translate_db_errors()
def update_credential(
    db: Session,
    user_id: str,
    credential_id: str,
    values: dict,
    now: datetime | None = None,
) -> Credential:
    """Owner-scoped edit, re-evaluated at once: a renewal re-arms expiry alerts."""
    credential = get_credential(db, user_id, credential_id)
    _apply_fields(credential, values)
    db.flush()
    evaluate_credential(db, credential, now)
    db.commit()
    db.refresh(credential)
    return credential


@translate_db_errors()
def delete_credential(
    db: Session,
    user_id: str,
    credential_id: str,
    blob_store: BlobStore | None = None,
) -> None:
    credential = get_credential(db, user_id, credential_id)
    document_path = credential.document_path
    db.delete(credential)
    db.commit()
    remove_blob_quietly(blob_store, document_path)
    logger.info("Credential %s deleted by %s", credential_id, user_id)
