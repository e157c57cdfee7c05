from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base
from modules.envelopes.models.placeholder import SignaturePlaceholder

class EnvelopeStatus(PyEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    PREPARED = "prepared"
    SIGNING_DEFERRED = "signing_deferred"
    SIGNING_DECLINED = "signing_declined"
    COMPLETED = "completed"
    VOIDED = "voided"
    EXPIRED = "expired"

class Envelope(Base):
    __tablename__ = 'envelopes'

    id = Column(String(36), primary_key=True)
    recipient_id = Column(Integer, ForeignKey('recipients.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(Enum(EnvelopeStatus), nullable=False, default=EnvelopeStatus.PENDING)
    workflow_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    signed_pdf_url = Column(String, nullable=True)
    signed_pdf_iv = Column(String(32), nullable=True)
    signed_pdf_auth_tag = Column(String(32), nullable=True)
    # Caller-supplied link to a signed copy held elsewhere; never served or deleted here
    signed_pdf_reference = Column(String(1024), nullable=True)

    recipient = relationship("Recipient", back_populates="envelopes")

    placeholders = relationship(
        "SignaturePlaceholder",
        back_populates="envelope",
        order_by=[SignaturePlaceholder.page_number, SignaturePlaceholder.x],
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    signatures = relationship("Signature", back_populates="envelope", order_by="Signature.id", cascade="all, delete-orphan", passive_deletes=True)
    signing_tokens = relationship("SigningToken", back_populates="envelope", cascade="all, delete-orphan", passive_deletes=True)
    face_attempts = relationship(
        "FaceVerificationAttempt",
        back_populates="envelope",
        order_by="FaceVerificationAttempt.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    name_attempts = relationship(
        "NameVerificationAttempt",
        back_populates="envelope",
        order_by="NameVerificationAttempt.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    def owns_signed_pdf(self) -> bool:
        """Only a signed PDF stored through finalize carries IV and tag"""
        return bool(self.signed_pdf_url and self.signed_pdf_iv and self.signed_pdf_auth_tag)
