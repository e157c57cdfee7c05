import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.envelopes.models.audit_log import AuditLogEntry

logger = logging.getLogger(__name__)


class AuditService:
    """
    Appends audit entries inside a SAVEPOINT of the caller's transaction.

    The entry commits together with the business change it describes. If the
    insert itself fails only the savepoint is rolled back: the failure is
    logged and the business operation carries on.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def record(
        self,
        event_type: str,
        envelope_id: Optional[str] = None,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        entry = AuditLogEntry(
            envelope_id=envelope_id,
            event_type=event_type,
            user_id=user_id,
            ip_address=ip_address,
            details=details or {},
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except SQLAlchemyError:
            logger.exception(f"Audit write failed for '{event_type}' (envelope {envelope_id})")
            return None
        return entry

    def list_entries(self, envelope_id: Optional[str] = None, limit: int = 500) -> List[AuditLogEntry]:
        query = self.db.query(AuditLogEntry)
        if envelope_id is not None:
            query = query.filter(AuditLogEntry.envelope_id == envelope_id)
        return query.order_by(AuditLogEntry.timestamp, AuditLogEntry.id).limit(limit).all()
