# src/modules/envelopes/models/signature.py

from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Text, Boolean, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class SignatureType(PyEnum):
    DRAWN = "drawn"
    UPLOADED = "uploaded"

class Signature(Base):
    __tablename__ = "signatures"

    id             = Column(Integer, primary_key=True)
    envelope_id    = Column(String(36), ForeignKey("envelopes.id", ondelete="CASCADE"), nullable=False, index=True)
    signature_type = Column(Enum(SignatureType), nullable=False)
    data           = Column(Text, nullable=False)
    created_at     = Column(DateTime, default=datetime.utcnow, nullable=False)

    envelope = relationship("Envelope", back_populates="signatures")
    consent  = relationship("SignatureConsent", back_populates="signature", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    hash     = relationship("SignatureHash", back_populates="signature", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

class SignatureConsent(Base):
    """Express consent to sign electronically, recorded per signature"""
    __tablename__ = "signature_consents"

    id            = Column(Integer, primary_key=True)
    signature_id  = Column(Integer, ForeignKey("signatures.id", ondelete="CASCADE"), nullable=False, unique=True)
    envelope_id   = Column(String(36), ForeignKey("envelopes.id", ondelete="CASCADE"), nullable=False, index=True)
    consent_given = Column(Boolean, nullable=False)
    consented_at  = Column(DateTime, default=datetime.utcnow, nullable=False)

    signature = relationship("Signature", back_populates="consent")

class SignatureHash(Base):
    """SHA-256 of the raw signature data, re-hashed to detect later alteration"""
    __tablename__ = "signature_hashes"

    id           = Column(Integer, primary_key=True)
    signature_id = Column(Integer, ForeignKey("signatures.id", ondelete="CASCADE"), nullable=False, unique=True)
    envelope_id  = Column(String(36), ForeignKey("envelopes.id", ondelete="CASCADE"), nullable=False, index=True)
    sha256_hash  = Column(String(64), nullable=False)
    created_at   = Column(DateTime, default=datetime.utcnow, nullable=False)

    signature = relationship("Signature", back_populates="hash")
