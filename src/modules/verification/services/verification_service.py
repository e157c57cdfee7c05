import logging
from typing import Optional, Tuple

from modules.common.errors import AppError, ValidationError
from modules.envelopes.models import FaceVerificationAttempt, NameVerificationAttempt
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository, IncomingFile
from modules.envelopes.services.audit_service import AuditService
from modules.storage.services.blob_store import EncryptedBlobStore, StoredBlob
from modules.verification.services.verification_adapter import (
    DocumentNameVerdict, FaceVerdict, VerificationAdapter,
)
from modules.webhooks.services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


class VerificationService:
    """
    Identity checks around the vision adapter: image validation, encrypted
    custody of the submitted images, the face attempt log, audit and events.
    """

    def __init__(
        self,
        repository: EnvelopeRepository,
        blob_store: EncryptedBlobStore,
        adapter: VerificationAdapter,
        dispatcher: EventDispatcher,
        audit: Optional[AuditService] = None,
        max_file_size: int = 10 * 1024 * 1024,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.adapter = adapter
        self.dispatcher = dispatcher
        self.audit = audit or AuditService(repository.db)
        self.max_file_size = max_file_size

    def validate_image(self, image: IncomingFile, field_name: str) -> None:
        if not image.content:
            raise ValidationError(f"{field_name} is empty")
        if image.content_type not in IMAGE_CONTENT_TYPES:
            raise ValidationError(
                f"{field_name} must be an image",
                {"contentType": image.content_type, "allowed": list(IMAGE_CONTENT_TYPES)},
            )
        if len(image.content) > self.max_file_size:
            raise ValidationError(f"{field_name} exceeds the maximum size of {self.max_file_size // (1024 * 1024)} MB")

    def _store_image(self, envelope_id: str, kind: str, image: IncomingFile) -> StoredBlob:
        return self.blob_store.store(f"{envelope_id}-{kind}-{image.filename}", image.content, image.content_type)

    def verify_document_name(
        self,
        document_image: IncomingFile,
        claimed_name: str,
        envelope_id: Optional[str] = None,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Tuple[DocumentNameVerdict, Optional[NameVerificationAttempt]]:
        """
        With an envelope the document image is kept encrypted and the call is
        logged as a NameVerificationAttempt the envelope owns, failed calls included.
        """
        if not claimed_name or not claimed_name.strip():
            raise ValidationError("recipientName is required")
        self.validate_image(document_image, "documentImage")

        claimed_name = claimed_name.strip()
        stored = None
        if envelope_id:
            self.repository.get_envelope(envelope_id)
            stored = self._store_image(envelope_id, "document", document_image)

        try:
            verdict = self.adapter.verify_document_name(
                document_image.content, claimed_name, document_image.content_type
            )
        except AppError as e:
            if envelope_id:
                attempt = self.repository.record_name_attempt(
                    envelope_id, stored, claimed_name,
                    name_verified=False,
                    reason=f"{e.code}: {e.message}",
                )
                self.audit.record(
                    "verification.document_name_failed",
                    envelope_id=envelope_id,
                    user_id=actor,
                    ip_address=ip_address,
                    details={"attemptId": attempt.id, "code": e.code, "message": e.message},
                )
                self.repository.db.commit()
            raise

        attempt = None
        if envelope_id:
            attempt = self.repository.record_name_attempt(
                envelope_id, stored, claimed_name,
                name_verified=verdict.name_verified,
                confidence=verdict.confidence,
                reason=verdict.reason,
                extracted_name=verdict.extracted_name,
            )
            self.audit.record(
                "verification.document_name",
                envelope_id=envelope_id,
                user_id=actor,
                ip_address=ip_address,
                details={"attemptId": attempt.id, **verdict.to_dict()},
            )
            self.repository.db.commit()
        self.dispatcher.publish("verification.document_name", {"envelopeId": envelope_id, **verdict.to_dict()})
        return verdict, attempt

    def verify_face(
        self,
        selfie_image: IncomingFile,
        document_image: IncomingFile,
        envelope_id: str,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Tuple[FaceVerdict, FaceVerificationAttempt]:
        """
        Every call is logged as a FaceVerificationAttempt, including calls
        whose answer could not be parsed (recorded as not verified).
        """
        self.validate_image(selfie_image, "selfieImage")
        self.validate_image(document_image, "documentImage")
        self.repository.get_envelope(envelope_id)

        selfie_blob = self._store_image(envelope_id, "selfie", selfie_image)
        document_blob = self._store_image(envelope_id, "document", document_image)

        try:
            verdict = self.adapter.verify_face(
                selfie_image.content,
                document_image.content,
                selfie_image.content_type,
                document_image.content_type,
            )
        except AppError as e:
            attempt = self.repository.record_face_attempt(
                envelope_id, selfie_blob, document_blob,
                face_verified=False,
                reason=f"{e.code}: {e.message}",
            )
            logger.warning(f"Face verification for envelope {envelope_id} failed ({e.code}), attempt {attempt.id} recorded")
            self.audit.record(
                "verification.face_failed",
                envelope_id=envelope_id,
                user_id=actor,
                ip_address=ip_address,
                details={"attemptId": attempt.id, "code": e.code},
            )
            self.repository.db.commit()
            raise

        attempt = self.repository.record_face_attempt(
            envelope_id, selfie_blob, document_blob,
            face_verified=verdict.face_verified,
            confidence=verdict.confidence,
            reason=verdict.reason,
        )
        self.audit.record(
            "verification.face",
            envelope_id=envelope_id,
            user_id=actor,
            ip_address=ip_address,
            details={"attemptId": attempt.id, **verdict.to_dict()},
        )
        self.repository.db.commit()
        self.dispatcher.publish("verification.face", {"envelopeId": envelope_id, "attemptId": attempt.id, **verdict.to_dict()})
        return verdict, attempt
