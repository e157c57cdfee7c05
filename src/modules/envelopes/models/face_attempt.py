from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class FaceVerificationAttempt(Base):
    """Append-only: one row per face-match call, successful or not"""
    __tablename__ = 'face_verification_attempts'

    id = Column(Integer, primary_key=True)
    envelope_id = Column(String(36), ForeignKey('envelopes.id', ondelete='CASCADE'), nullable=False, index=True)

    selfie_url = Column(String, nullable=False)
    selfie_iv = Column(String(32), nullable=True)
    selfie_auth_tag = Column(String(32), nullable=True)
    document_url = Column(String, nullable=False)
    document_iv = Column(String(32), nullable=True)
    document_auth_tag = Column(String(32), nullable=True)

    face_verified = Column(Boolean, nullable=False, default=False)
    confidence = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)
    attempted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    envelope = relationship("Envelope", back_populates="face_attempts")
