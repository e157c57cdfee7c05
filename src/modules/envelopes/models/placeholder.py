from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class SignaturePlaceholder(Base):
    """Expected signature location; coordinates are fractions of the page size"""
    __tablename__ = 'signature_placeholders'

    id = Column(Integer, primary_key=True)
    envelope_id = Column(String(36), ForeignKey('envelopes.id', ondelete='CASCADE'), nullable=False, index=True)
    page_number = Column(Integer, nullable=False)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    is_signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    envelope = relationship("Envelope", back_populates="placeholders")
