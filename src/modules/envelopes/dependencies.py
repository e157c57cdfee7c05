from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, UploadFile
from sqlalchemy.orm import Session

from config import decode_encryption_key, get_settings
from database import get_db
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository, IncomingFile
from modules.envelopes.services.audit_service import AuditService
from modules.envelopes.services.envelope_state_service import EnvelopeStateService
from modules.envelopes.services.session_service import SessionService
from modules.storage import EncryptedBlobStore, LocalObjectStore, ObjectStore, S3ObjectStore
from modules.webhooks.dependencies import get_dispatcher
from modules.webhooks.services.dispatcher import EventDispatcher


@lru_cache
def get_object_store() -> ObjectStore:
    settings = get_settings()
    if settings.STORAGE_BACKEND == "s3":
        return S3ObjectStore(
            bucket_name=settings.AWS_S3_BUCKET_NAME,
            region=settings.AWS_REGION,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
        )
    return LocalObjectStore(settings.UPLOAD_DIR)


def get_blob_store() -> EncryptedBlobStore:
    return EncryptedBlobStore(get_object_store(), decode_encryption_key(get_settings().ENCRYPTION_KEY))


def get_envelope_repository(
    db: Session = Depends(get_db),
    blob_store: EncryptedBlobStore = Depends(get_blob_store),
) -> EnvelopeRepository:
    return EnvelopeRepository(db, blob_store)


def get_audit_service(db: Session = Depends(get_db)) -> AuditService:
    return AuditService(db)


def get_state_service(
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    audit: AuditService = Depends(get_audit_service),
) -> EnvelopeStateService:
    settings = get_settings()
    return EnvelopeStateService(
        repository,
        dispatcher,
        audit=audit,
        signing_link_ttl=timedelta(hours=settings.SIGNING_LINK_TTL_HOURS),
        frontend_url=settings.FRONTEND_URL,
    )


def get_session_service(
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    blob_store: EncryptedBlobStore = Depends(get_blob_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> SessionService:
    settings = get_settings()
    return SessionService(
        repository,
        blob_store,
        dispatcher,
        envelope_ttl=timedelta(days=settings.ENVELOPE_TTL_DAYS),
        max_file_size=settings.MAX_FILE_SIZE,
    )


def read_upload(upload: UploadFile) -> IncomingFile:
    upload.file.seek(0)
    return IncomingFile(
        filename=upload.filename or "upload",
        content=upload.file.read(),
        content_type=upload.content_type or "application/octet-stream",
    )
