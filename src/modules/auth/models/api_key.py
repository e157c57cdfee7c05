from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime
from database import Base

class ApiKey(Base):
    """Only the bcrypt hash and a display prefix are kept; the plaintext is shown once"""
    __tablename__ = 'api_keys'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    key_hash = Column(String, nullable=False)
    partial_key = Column(String(16), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)
    revoked = Column(Boolean, nullable=False, default=False)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def is_usable(self, now: datetime = None) -> bool:
        if self.revoked:
            return False
        return self.expires_at is None or (now or datetime.utcnow()) < self.expires_at
