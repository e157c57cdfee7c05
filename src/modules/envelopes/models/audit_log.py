from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime
from database import Base

class AuditLogEntry(Base):
    """Append-only. envelope_id has no foreign key so entries outlive the envelope."""
    __tablename__ = 'audit_log'

    id = Column(Integer, primary_key=True)
    envelope_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
