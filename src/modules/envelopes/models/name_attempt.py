from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class NameVerificationAttempt(Base):
    """One row per document-name check run against an envelope"""
    __tablename__ = 'name_verification_attempts'

    id = Column(Integer, primary_key=True)
    envelope_id = Column(String(36), ForeignKey('envelopes.id', ondelete='CASCADE'), nullable=False, index=True)

    document_url = Column(String, nullable=False)
    document_iv = Column(String(32), nullable=True)
    document_auth_tag = Column(String(32), nullable=True)

    claimed_name = Column(String(255), nullable=False)
    extracted_name = Column(String(255), nullable=True)
    name_verified = Column(Boolean, nullable=False, default=False)
    confidence = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)
    attempted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    envelope = relationship("Envelope", back_populates="name_attempts")
