from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class Recipient(Base):
    __tablename__ = 'recipients'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Recipient owns its documents and (indirectly) its envelope
    documents = relationship("Document", back_populates="recipient", cascade="all, delete-orphan", passive_deletes=True)
    envelopes = relationship("Envelope", back_populates="recipient", cascade="all, delete-orphan", passive_deletes=True)
