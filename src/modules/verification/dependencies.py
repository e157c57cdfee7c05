from fastapi import Depends

from config import get_settings
from modules.common.http import get_http_client
from modules.envelopes.dependencies import get_audit_service, get_blob_store, get_envelope_repository
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.services.audit_service import AuditService
from modules.storage import EncryptedBlobStore
from modules.verification.services.verification_adapter import VerificationAdapter
from modules.verification.services.verification_service import VerificationService
from modules.webhooks.dependencies import get_dispatcher
from modules.webhooks.services.dispatcher import EventDispatcher


def get_verification_adapter() -> VerificationAdapter:
    settings = get_settings()
    return VerificationAdapter(
        get_http_client(),
        api_url=settings.VISION_API_URL,
        api_key=settings.VISION_API_KEY,
        model=settings.VISION_MODEL,
        timeout=settings.VISION_TIMEOUT_SECONDS,
    )


def get_verification_service(
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    blob_store: EncryptedBlobStore = Depends(get_blob_store),
    adapter: VerificationAdapter = Depends(get_verification_adapter),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    audit: AuditService = Depends(get_audit_service),
) -> VerificationService:
    return VerificationService(
        repository,
        blob_store,
        adapter,
        dispatcher,
        audit=audit,
        max_file_size=get_settings().MAX_FILE_SIZE,
    )
