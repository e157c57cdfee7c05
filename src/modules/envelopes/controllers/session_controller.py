# src/modules/envelopes/controllers/session_controller.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from modules.auth.dependencies import SigningAccess, get_signing_access, require_api_key
from modules.envelopes.dependencies import (
    get_audit_service, get_envelope_repository, get_session_service, read_upload,
)
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.schemas import SessionCreateResponse, SessionDetail, SignatureHashCheck
from modules.envelopes.services.audit_service import AuditService
from modules.envelopes.services.session_service import SessionService
from modules.signing.services.audit_trail_service import AuditTrailService

router = APIRouter(
    prefix="/signing-session",
    tags=["signing-sessions"]
)


@router.post(
    "",
    response_model=SessionCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
def create_signing_session(
    recipientName: str = Form(...),
    recipientEmail: str = Form(...),
    documents: List[UploadFile] = File(...),
    workflowId: Optional[str] = Form(None),
    signaturePlaceholders: Optional[str] = Form(None),
    service: SessionService = Depends(get_session_service),
):
    """
    Crea la sesión de firma: destinatario, documentos cifrados y el sobre en
    estado pending, todo en una sola transacción
    """
    files = [read_upload(upload) for upload in documents]
    envelope, workflow = service.create_session(
        recipientName,
        recipientEmail,
        files,
        workflow_id=workflowId,
        placeholders_json=signaturePlaceholders,
    )
    return SessionCreateResponse(
        sessionId=envelope.id,
        recipientId=envelope.recipient_id,
        documentUrls=[document.storage_url for document in envelope.recipient.documents],
        expiresAt=envelope.expires_at,
        workflow=workflow.to_dict(),
    )


@router.get("/{session_id}", response_model=SessionDetail)
def get_signing_session(
    session_id: str,
    access: SigningAccess = Depends(get_signing_access),
    service: SessionService = Depends(get_session_service),
):
    access.authorize(session_id)
    return SessionDetail.from_envelope(service.get_session(session_id))


@router.get("/{session_id}/document", dependencies=[Depends(require_api_key)])
def download_signed_document(session_id: str, service: SessionService = Depends(get_session_service)):
    content = service.download_signed_pdf(session_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{session_id}-signed.pdf"'},
    )


@router.get("/{session_id}/audit-trail", dependencies=[Depends(require_api_key)])
def download_audit_trail(
    session_id: str,
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    audit: AuditService = Depends(get_audit_service),
):
    pdf = AuditTrailService(repository, audit).render(session_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{session_id}-audit-trail.pdf"'},
    )


@router.get(
    "/{session_id}/signatures/verify",
    response_model=List[SignatureHashCheck],
    dependencies=[Depends(require_api_key)],
)
def verify_signatures(session_id: str, repository: EnvelopeRepository = Depends(get_envelope_repository)):
    """Recalcula el SHA-256 de cada firma y lo compara con el almacenado"""
    repository.get_envelope(session_id)
    return repository.verify_signature_hashes(session_id)
