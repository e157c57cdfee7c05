from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON

from database import Base

class Webhook(Base):
    __tablename__ = 'webhooks'

    id = Column(Integer, primary_key=True)
    url = Column(String(2048), nullable=False)
    events = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    def subscribes_to(self, event_name: str) -> bool:
        return event_name in (self.events or []) or "*" in (self.events or [])
