# src/modules/verification/controllers/verification_controller.py
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from modules.auth.dependencies import SigningAccess, get_signing_access
from modules.common.http import client_ip
from modules.envelopes.dependencies import read_upload
from modules.verification.dependencies import get_verification_service
from modules.verification.schemas import DocumentNameVerificationResponse, FaceVerificationResponse
from modules.verification.services.verification_service import VerificationService

router = APIRouter(
    prefix="/verify",
    tags=["verification"]
)


@router.post("/document-name", response_model=DocumentNameVerificationResponse)
def verify_document_name(
    request: Request,
    documentImage: UploadFile = File(...),
    recipientName: str = Form(...),
    envelopeId: Optional[str] = Form(None),
    access: SigningAccess = Depends(get_signing_access),
    service: VerificationService = Depends(get_verification_service),
):
    """Compara el nombre impreso en el documento con el nombre declarado"""
    actor = access.authorize(envelopeId)
    verdict, attempt = service.verify_document_name(
        read_upload(documentImage),
        recipientName,
        envelope_id=envelopeId,
        actor=actor,
        ip_address=client_ip(request),
    )
    return DocumentNameVerificationResponse(
        **verdict.to_dict(),
        envelopeId=envelopeId,
        attemptId=attempt.id if attempt is not None else None,
    )


@router.post("/face", response_model=FaceVerificationResponse)
def verify_face(
    request: Request,
    selfieImage: UploadFile = File(...),
    documentImage: UploadFile = File(...),
    envelopeId: str = Form(...),
    access: SigningAccess = Depends(get_signing_access),
    service: VerificationService = Depends(get_verification_service),
):
    """Compara la selfie con la foto del documento; cada intento queda registrado"""
    actor = access.authorize(envelopeId)
    verdict, attempt = service.verify_face(
        read_upload(selfieImage),
        read_upload(documentImage),
        envelopeId,
        actor=actor,
        ip_address=client_ip(request),
    )
    return FaceVerificationResponse(**verdict.to_dict(), envelopeId=envelopeId, attemptId=attempt.id)
