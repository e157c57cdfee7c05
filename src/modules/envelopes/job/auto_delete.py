import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from database import SessionLocal
from modules.envelopes.services.cleanup import purge_expired_signing_tokens

logger = logging.getLogger(__name__)


def run_token_purge(session_factory=SessionLocal) -> int:
    with session_factory() as session:
        try:
            return purge_expired_signing_tokens(session)
        except SQLAlchemyError:
            logger.exception("Signing token purge failed")
            session.rollback()
            return 0


def start_cleanup_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(run_token_purge, 'interval', days=1, id="purge_expired_signing_tokens")  # cada 24 horas
    scheduler.start()
    return scheduler
