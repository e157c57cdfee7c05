from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from modules.envelopes.models.envelope import EnvelopeStatus
from modules.envelopes.models.signature import SignatureType


class PlaceholderCreate(BaseModel):
    """Coordinates are fractions of the page size, origin top-left"""
    page: int = Field(..., ge=1)
    x: float = Field(..., ge=0, le=1)
    y: float = Field(..., ge=0, le=1)
    width: float = Field(0.2, gt=0, le=1)
    height: float = Field(0.076, gt=0, le=1)


class PlaceholderResponse(BaseModel):
    id: int
    page_number: int
    x: float
    y: float
    width: float
    height: float
    is_signed: bool
    signed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PlaceholderValidation(BaseModel):
    total: int
    signed: int
    unsigned_ids: List[int]
    all_signed: bool


class RecipientResponse(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: int
    filename: str
    storage_url: str
    content_type: str
    file_size: int
    encrypted: bool = Field(validation_alias="is_encrypted")
    uploaded_at: datetime

    model_config = {"from_attributes": True}


class SignatureResponse(BaseModel):
    id: int
    signature_type: SignatureType
    created_at: datetime
    consent_given: Optional[bool] = None
    sha256_hash: Optional[str] = None

    @classmethod
    def from_signature(cls, signature) -> "SignatureResponse":
        return cls(
            id=signature.id,
            signature_type=signature.signature_type,
            created_at=signature.created_at,
            consent_given=signature.consent.consent_given if signature.consent else None,
            sha256_hash=signature.hash.sha256_hash if signature.hash else None,
        )


class SessionCreateResponse(BaseModel):
    sessionId: str
    recipientId: int
    documentUrls: List[str]
    expiresAt: datetime
    workflow: dict


class SessionSummary(BaseModel):
    id: str
    status: EnvelopeStatus
    workflow_id: str
    recipient: RecipientResponse
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class SessionDetail(SessionSummary):
    signed_pdf_url: Optional[str] = None
    signed_pdf_reference: Optional[str] = None
    documents: List[DocumentResponse]
    signatures: List[SignatureResponse]
    placeholders: List[PlaceholderResponse]

    @classmethod
    def from_envelope(cls, envelope) -> "SessionDetail":
        return cls(
            id=envelope.id,
            status=envelope.status,
            workflow_id=envelope.workflow_id,
            recipient=RecipientResponse.model_validate(envelope.recipient),
            created_at=envelope.created_at,
            updated_at=envelope.updated_at,
            expires_at=envelope.expires_at,
            signed_pdf_url=envelope.signed_pdf_url,
            signed_pdf_reference=envelope.signed_pdf_reference,
            documents=[DocumentResponse.model_validate(doc) for doc in envelope.recipient.documents],
            signatures=[SignatureResponse.from_signature(sig) for sig in envelope.signatures],
            placeholders=[PlaceholderResponse.model_validate(p) for p in envelope.placeholders],
        )


class SessionListResponse(BaseModel):
    sessions: List[SessionSummary]
    total: int


class VerificationResultRequest(BaseModel):
    nameVerified: Optional[bool] = None
    faceVerified: Optional[bool] = None


class StatusUpdateRequest(BaseModel):
    status: EnvelopeStatus
    signatureType: Optional[SignatureType] = None
    signatureData: Optional[str] = None
    consentGiven: Optional[bool] = None
    reason: Optional[str] = Field(None, max_length=1000)
    signedPdfUrl: Optional[str] = Field(None, max_length=1024)


class EnvelopeStatusResponse(BaseModel):
    id: str
    status: EnvelopeStatus
    updated_at: datetime
    signature_id: Optional[int] = None


class SigningLinkResponse(BaseModel):
    link: str
    token: str
    expiresAt: datetime


class PreparedDocument(BaseModel):
    documentId: int
    filename: str
    signatureFields: int


class PrepareResponse(BaseModel):
    id: str
    status: EnvelopeStatus
    documents: List[PreparedDocument]


class SignatureHashCheck(BaseModel):
    signature_id: int
    valid: bool


class AuditEntryResponse(BaseModel):
    id: int
    envelope_id: Optional[str] = None
    event_type: str
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    details: dict
    timestamp: datetime

    model_config = {"from_attributes": True}


class RecipientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
