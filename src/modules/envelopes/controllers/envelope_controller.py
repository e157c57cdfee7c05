# src/modules/envelopes/controllers/envelope_controller.py
import logging
from typing import List

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from modules.auth.dependencies import SigningAccess, get_signing_access, require_api_key
from modules.auth.models.api_key import ApiKey
from modules.common.http import client_ip
from modules.envelopes.dependencies import (
    get_envelope_repository, get_session_service, get_state_service, read_upload,
)
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.schemas import (
    EnvelopeStatusResponse, PlaceholderCreate, PlaceholderResponse, PlaceholderValidation,
    PrepareResponse, SigningLinkResponse, StatusUpdateRequest, VerificationResultRequest,
)
from modules.envelopes.services.envelope_state_service import EnvelopeStateService
from modules.envelopes.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/envelope",
    tags=["envelopes"]
)


def _status_response(envelope, signature=None) -> EnvelopeStatusResponse:
    return EnvelopeStatusResponse(
        id=envelope.id,
        status=envelope.status,
        updated_at=envelope.updated_at,
        signature_id=signature.id if signature is not None else None,
    )


@router.post("/{envelope_id}/verify", response_model=EnvelopeStatusResponse)
def apply_verification(
    envelope_id: str,
    payload: VerificationResultRequest,
    request: Request,
    api_key: ApiKey = Depends(require_api_key),
    service: EnvelopeStateService = Depends(get_state_service),
):
    """
    Registra el resultado de la verificación de identidad. Los checks que
    exige el workflow del sobre deciden entre verified y verification_failed.
    """
    envelope = service.apply_verification(
        envelope_id,
        payload.model_dump(),
        actor=f"api_key:{api_key.name}",
        ip_address=client_ip(request),
    )
    return _status_response(envelope)


@router.get("/{envelope_id}/signing-link", response_model=SigningLinkResponse)
def issue_signing_link(
    envelope_id: str,
    request: Request,
    api_key: ApiKey = Depends(require_api_key),
    service: EnvelopeStateService = Depends(get_state_service),
):
    token, link = service.issue_signing_link(envelope_id, actor=f"api_key:{api_key.name}", ip_address=client_ip(request))
    return SigningLinkResponse(link=link, token=token.token, expiresAt=token.expires_at)


@router.post("/{envelope_id}/status", response_model=EnvelopeStatusResponse)
def update_status(
    envelope_id: str,
    payload: StatusUpdateRequest,
    request: Request,
    access: SigningAccess = Depends(get_signing_access),
    service: EnvelopeStateService = Depends(get_state_service),
):
    actor = access.authorize(envelope_id)
    envelope, signature = service.update_status(
        envelope_id,
        payload.status,
        signature_type=payload.signatureType,
        signature_data=payload.signatureData,
        consent_given=payload.consentGiven,
        reason=payload.reason,
        signed_pdf_url=payload.signedPdfUrl,
        actor=actor,
        ip_address=client_ip(request),
    )
    return _status_response(envelope, signature)


@router.post("/{envelope_id}/prepare", response_model=PrepareResponse)
def prepare_envelope(
    envelope_id: str,
    request: Request,
    api_key: ApiKey = Depends(require_api_key),
    service: EnvelopeStateService = Depends(get_state_service),
):
    envelope, documents = service.prepare(envelope_id, actor=f"api_key:{api_key.name}", ip_address=client_ip(request))
    return PrepareResponse(id=envelope.id, status=envelope.status, documents=documents)


@router.post("/{envelope_id}/finalize", response_model=EnvelopeStatusResponse)
def finalize_envelope(
    envelope_id: str,
    request: Request,
    signedPdf: UploadFile = File(...),
    access: SigningAccess = Depends(get_signing_access),
    sessions: SessionService = Depends(get_session_service),
    service: EnvelopeStateService = Depends(get_state_service),
):
    """Guarda el PDF firmado cifrado y completa el sobre"""
    actor = access.authorize(envelope_id)
    stored = sessions.store_signed_pdf(envelope_id, read_upload(signedPdf))
    try:
        envelope = service.finalize(envelope_id, stored, actor=actor, ip_address=client_ip(request))
    except Exception:
        logger.warning(f"Finalize of envelope {envelope_id} failed, removing stored signed PDF")
        sessions.blob_store.delete(stored.url)
        raise
    return _status_response(envelope)


# --- Placeholders -----------------------------------------------------------

@router.get(
    "/{envelope_id}/placeholders",
    response_model=List[PlaceholderResponse],
    dependencies=[Depends(require_api_key)],
)
def list_placeholders(envelope_id: str, repository: EnvelopeRepository = Depends(get_envelope_repository)):
    repository.get_envelope(envelope_id)
    return repository.list_placeholders(envelope_id)


@router.post(
    "/{envelope_id}/placeholders",
    response_model=List[PlaceholderResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
def add_placeholders(
    envelope_id: str,
    payload: List[PlaceholderCreate],
    repository: EnvelopeRepository = Depends(get_envelope_repository),
):
    repository.get_envelope(envelope_id)
    return repository.add_placeholders(envelope_id, payload)


@router.get(
    "/{envelope_id}/placeholders/validation",
    response_model=PlaceholderValidation,
    dependencies=[Depends(require_api_key)],
)
def validate_placeholders(envelope_id: str, repository: EnvelopeRepository = Depends(get_envelope_repository)):
    """Solo informativo: los placeholders sin firmar no bloquean la finalización"""
    repository.get_envelope(envelope_id)
    return repository.placeholder_progress(envelope_id)


@router.delete(
    "/{envelope_id}/placeholders/{placeholder_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_api_key)],
)
def delete_placeholder(
    envelope_id: str,
    placeholder_id: int,
    repository: EnvelopeRepository = Depends(get_envelope_repository),
):
    repository.delete_placeholder(envelope_id, placeholder_id)
