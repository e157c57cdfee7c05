from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class SigningToken(Base):
    __tablename__ = 'signing_tokens'

    id = Column(Integer, primary_key=True)
    envelope_id = Column(String(36), ForeignKey('envelopes.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    envelope = relationship("Envelope", back_populates="signing_tokens")
