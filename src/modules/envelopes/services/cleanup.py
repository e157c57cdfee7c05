import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from modules.envelopes.repositories.envelope_repository import EnvelopeRepository

logger = logging.getLogger(__name__)

TOKEN_GRACE_PERIOD = timedelta(days=1)


def purge_expired_signing_tokens(session: Session, now: datetime = None) -> int:
    """Deletes signing tokens that expired more than a day ago; envelopes are left untouched"""
    cutoff_date = (now or datetime.utcnow()) - TOKEN_GRACE_PERIOD
    deleted = EnvelopeRepository(session).delete_expired_tokens(cutoff_date)
    if deleted:
        logger.info(f"Purged {deleted} expired signing token(s)")
    return deleted
