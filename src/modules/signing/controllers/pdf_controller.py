# src/modules/signing/controllers/pdf_controller.py
import json
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile

from config import get_settings
from modules.auth.dependencies import SigningAccess, get_signing_access
from modules.common.errors import ValidationError
from modules.common.http import client_ip
from modules.envelopes.dependencies import get_audit_service, get_state_service, read_upload
from modules.envelopes.services.audit_service import AuditService
from modules.envelopes.services.envelope_state_service import EnvelopeStateService
from modules.signing.dependencies import get_signing_engine
from modules.signing.services.pdf_signing_engine import PdfSigningEngine

router = APIRouter(tags=["signing"])


def _parse_signatures(raw: str) -> list:
    try:
        signatures = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("signatures must be valid JSON")
    if not isinstance(signatures, list):
        raise ValidationError("signatures must be a JSON array")
    return signatures


@router.post("/sign-pdf")
def sign_pdf(
    request: Request,
    pdf: UploadFile = File(...),
    signatures: str = Form(...),
    envelopeId: Optional[str] = Form(None),
    access: SigningAccess = Depends(get_signing_access),
    engine: PdfSigningEngine = Depends(get_signing_engine),
    audit: AuditService = Depends(get_audit_service),
    state: EnvelopeStateService = Depends(get_state_service),
):
    """
    Estampa las firmas en el PDF y devuelve el documento firmado.
    Las entradas inválidas se omiten; un PDF ilegible rechaza la petición.
    """
    actor = access.authorize(envelopeId)
    document = read_upload(pdf)
    if not document.content:
        raise ValidationError("pdf is empty")
    if len(document.content) > get_settings().MAX_FILE_SIZE:
        raise ValidationError("pdf exceeds the maximum upload size")
    entries = _parse_signatures(signatures)

    if envelopeId:
        state.ensure_signable(envelopeId)
    report = engine.sign(document.content, entries, envelope_id=envelopeId)

    if envelopeId:
        audit.record(
            "document.signed",
            envelope_id=envelopeId,
            user_id=actor,
            ip_address=client_ip(request),
            details={
                "applied": report.applied,
                "skipped": report.skipped,
                "identityPage": report.identity_page_appended,
            },
        )
        audit.db.commit()

    return Response(
        content=report.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": 'attachment; filename="signed.pdf"',
            "X-Signatures-Applied": str(report.applied),
            "X-Signatures-Skipped": str(len(report.skipped)),
        },
    )
