from typing import Optional

from pydantic import BaseModel


class DocumentNameVerificationResponse(BaseModel):
    nameVerified: bool
    confidence: float
    reason: str
    extractedName: Optional[str] = None
    documentType: Optional[str] = None
    envelopeId: Optional[str] = None
    attemptId: Optional[int] = None


class FaceVerificationResponse(BaseModel):
    faceVerified: bool
    confidence: float
    reason: str
    envelopeId: str
    attemptId: int
