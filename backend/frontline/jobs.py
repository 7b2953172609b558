"""Background jobs run by the APScheduler instance in main."""
import logging

from sqlalchemy.orm import sessionmaker

from frontline.database import get_db_context
from frontline.errors import TransientError
from frontline.services.credentials import sweep_credentials

logger = logging.getLogger(__name__)

CREDENTIAL_SWEEP_JOB_ID = "credential_sweep"


def run_credential_sweep(session_factory: sessionmaker | None = None) -> int:
    """Evaluate every credential once. A store outage skips this run."""
    try:
        with get_db_context(session_factory) as db:
            return sweep_credentials(db)
    except TransientError as exc:
        logger.warning("Credential sweep skipped: %s", exc.message)
        return 0
