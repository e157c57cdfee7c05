import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from modules.common.errors import NotFoundError, ValidationError
from modules.envelopes.models import (
    AuditLogEntry, Document, Envelope, EnvelopeStatus, FaceVerificationAttempt, NameVerificationAttempt, Recipient,
    Signature, SignatureConsent, SignatureHash, SignaturePlaceholder, SignatureType,
    SigningToken, Workflow,
)
from modules.envelopes.schemas.envelope_schemas import PlaceholderCreate
from modules.storage.services.blob_store import EncryptedBlobStore, StoredBlob

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


def hash_signature_data(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class EnvelopeRepository:
    def __init__(self, db_session: Session, blob_store: Optional[EncryptedBlobStore] = None):
        self.db = db_session
        self.blob_store = blob_store

    # --- Signing sessions -------------------------------------------------

    def create_signing_session(
        self,
        recipient_name: str,
        recipient_email: str,
        files: List[IncomingFile],
        workflow: Workflow,
        ttl: timedelta,
        placeholders: Optional[List[PlaceholderCreate]] = None,
    ) -> Envelope:
        """
        Creates recipient, encrypted documents, the pending envelope and its
        placeholders in one transaction. Blobs uploaded before a failed
        commit are removed again.
        """
        if self.blob_store is None:
            raise RuntimeError("create_signing_session needs a blob store")
        if not files:
            raise ValidationError("At least one document is required")

        # 1) Encrypt and upload every file
        stored: List[StoredBlob] = []
        try:
            for incoming in files:
                stored.append(self.blob_store.store(incoming.filename, incoming.content, incoming.content_type))
        except Exception:
            self._discard_blobs(stored)
            raise

        # 2) Insert rows
        now = datetime.utcnow()
        try:
            recipient = Recipient(name=recipient_name, email=recipient_email)
            self.db.add(recipient)
            self.db.flush()

            for incoming, blob in zip(files, stored):
                self.db.add(Document(
                    recipient_id=recipient.id,
                    filename=incoming.filename,
                    storage_url=blob.url,
                    encryption_iv=blob.iv,
                    encryption_auth_tag=blob.auth_tag,
                    content_type=incoming.content_type,
                    file_size=len(incoming.content),
                ))

            envelope = Envelope(
                id=str(uuid.uuid4()),
                recipient_id=recipient.id,
                status=EnvelopeStatus.PENDING,
                workflow_id=workflow.id,
                created_at=now,
                updated_at=now,
                expires_at=now + ttl,
            )
            self.db.add(envelope)
            self.db.flush()

            for placeholder in placeholders or []:
                self.db.add(self._placeholder_row(envelope.id, placeholder))

            self.db.add(AuditLogEntry(
                envelope_id=envelope.id,
                event_type="envelope.created",
                details={"workflowId": workflow.id, "documents": len(files)},
            ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            self._discard_blobs(stored)
            raise

        self.db.refresh(envelope)
        return envelope

    def _discard_blobs(self, blobs: Iterable[StoredBlob]) -> None:
        for blob in blobs:
            try:
                self.blob_store.delete(blob.url)
            except Exception:
                logger.warning(f"Could not remove orphaned blob {blob.url}")

    def get_envelope(self, envelope_id: str) -> Envelope:
        envelope = self.db.get(Envelope, envelope_id)
        if not envelope:
            raise NotFoundError("Envelope not found", {"envelopeId": envelope_id})
        return envelope

    def get_session(self, envelope_id: str) -> Envelope:
        """Envelope joined with recipient, documents, signatures and placeholders"""
        envelope = (
            self.db.query(Envelope)
            .options(
                selectinload(Envelope.recipient).selectinload(Recipient.documents),
                selectinload(Envelope.signatures).selectinload(Signature.consent),
                selectinload(Envelope.signatures).selectinload(Signature.hash),
                selectinload(Envelope.placeholders),
            )
            .filter(Envelope.id == envelope_id)
            .first()
        )
        if not envelope:
            raise NotFoundError("Signing session not found", {"sessionId": envelope_id})
        return envelope

    def list_sessions(
        self,
        status: Optional[EnvelopeStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[List[Envelope], int]:
        query = self.db.query(Envelope).options(selectinload(Envelope.recipient))
        if status is not None:
            query = query.filter(Envelope.status == status)
        total = query.count()
        sessions = query.order_by(Envelope.created_at.desc()).offset(skip).limit(limit).all()
        return sessions, total

    def delete_session(self, envelope_id: str, deleted_by: Optional[str] = None) -> None:
        """
        Deletes the envelope and everything it owns in a single transaction,
        dependents first. Stored blobs are removed after the commit.
        """
        envelope = self.get_envelope(envelope_id)
        recipient_id = envelope.recipient_id
        documents = self.db.query(Document).filter(Document.recipient_id == recipient_id).all()
        attempts = self.db.query(FaceVerificationAttempt).filter(
            FaceVerificationAttempt.envelope_id == envelope_id
        ).all()
        name_attempts = self.db.query(NameVerificationAttempt).filter(
            NameVerificationAttempt.envelope_id == envelope_id
        ).all()
        blob_urls = [doc.storage_url for doc in documents]
        for attempt in attempts:
            blob_urls.extend([attempt.selfie_url, attempt.document_url])
        blob_urls.extend(attempt.document_url for attempt in name_attempts)
        if envelope.owns_signed_pdf():
            blob_urls.append(envelope.signed_pdf_url)

        try:
            self.db.query(SigningToken).filter(SigningToken.envelope_id == envelope_id).delete(synchronize_session=False)
            self.db.query(FaceVerificationAttempt).filter(
                FaceVerificationAttempt.envelope_id == envelope_id
            ).delete(synchronize_session=False)
            self.db.query(NameVerificationAttempt).filter(
                NameVerificationAttempt.envelope_id == envelope_id
            ).delete(synchronize_session=False)
            self.db.query(SignatureHash).filter(SignatureHash.envelope_id == envelope_id).delete(synchronize_session=False)
            self.db.query(SignatureConsent).filter(SignatureConsent.envelope_id == envelope_id).delete(synchronize_session=False)
            self.db.query(Signature).filter(Signature.envelope_id == envelope_id).delete(synchronize_session=False)
            self.db.query(SignaturePlaceholder).filter(
                SignaturePlaceholder.envelope_id == envelope_id
            ).delete(synchronize_session=False)
            self.db.query(Document).filter(Document.recipient_id == recipient_id).delete(synchronize_session=False)
            # envelopes.recipient_id references recipients, so the envelope goes before its recipient
            self.db.query(Envelope).filter(Envelope.id == envelope_id).delete(synchronize_session=False)
            self.db.query(Recipient).filter(Recipient.id == recipient_id).delete(synchronize_session=False)
            self.db.add(AuditLogEntry(
                envelope_id=envelope_id,
                event_type="session.deleted",
                user_id=deleted_by,
                details={"recipientId": recipient_id, "documents": len(documents)},
            ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Deleting session {envelope_id} failed, nothing was removed")
            raise
        self.db.expire_all()

        if self.blob_store is not None:
            for url in blob_urls:
                try:
                    self.blob_store.delete(url)
                except Exception:
                    logger.warning(f"Could not remove blob {url} of deleted session {envelope_id}")

    # --- Documents ----------------------------------------------------------

    def get_document(self, document_id: int) -> Document:
        document = self.db.get(Document, document_id)
        if not document:
            raise NotFoundError("Document not found", {"documentId": document_id})
        return document

    # --- Placeholders -------------------------------------------------------

    @staticmethod
    def _placeholder_row(envelope_id: str, placeholder: PlaceholderCreate) -> SignaturePlaceholder:
        return SignaturePlaceholder(
            envelope_id=envelope_id,
            page_number=placeholder.page,
            x=placeholder.x,
            y=placeholder.y,
            width=placeholder.width,
            height=placeholder.height,
            is_signed=False,
        )

    def add_placeholders(self, envelope_id: str, placeholders: List[PlaceholderCreate]) -> List[SignaturePlaceholder]:
        self.get_envelope(envelope_id)
        rows = [self._placeholder_row(envelope_id, p) for p in placeholders]
        self.db.add_all(rows)
        self.db.commit()
        for row in rows:
            self.db.refresh(row)
        return rows

    def list_placeholders(self, envelope_id: str) -> List[SignaturePlaceholder]:
        return (
            self.db.query(SignaturePlaceholder)
            .filter(SignaturePlaceholder.envelope_id == envelope_id)
            .order_by(SignaturePlaceholder.page_number, SignaturePlaceholder.x)
            .all()
        )

    def delete_placeholder(self, envelope_id: str, placeholder_id: int) -> None:
        placeholder = self.db.get(SignaturePlaceholder, placeholder_id)
        if not placeholder or placeholder.envelope_id != envelope_id:
            raise NotFoundError("Placeholder not found", {"placeholderId": placeholder_id})
        self.db.delete(placeholder)
        self.db.commit()

    def mark_placeholder_signed(self, envelope_id: str, placeholder_id: int) -> bool:
        """Flips is_signed once; returns False if the placeholder is unknown or already signed"""
        updated = (
            self.db.query(SignaturePlaceholder)
            .filter(
                SignaturePlaceholder.id == placeholder_id,
                SignaturePlaceholder.envelope_id == envelope_id,
                SignaturePlaceholder.is_signed.is_(False),
            )
            .update({"is_signed": True, "signed_at": datetime.utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def placeholder_progress(self, envelope_id: str) -> dict:
        placeholders = self.list_placeholders(envelope_id)
        unsigned = [p.id for p in placeholders if not p.is_signed]
        return {
            "total": len(placeholders),
            "signed": len(placeholders) - len(unsigned),
            "unsigned_ids": unsigned,
            "all_signed": not unsigned,
        }

    # --- Signatures ---------------------------------------------------------

    def add_signature(
        self,
        envelope_id: str,
        signature_type: SignatureType,
        data: str,
        consent_given: bool,
    ) -> Signature:
        """
        Inserts signature, consent and hash in that order on the current
        transaction. The caller commits.
        """
        signature = Signature(envelope_id=envelope_id, signature_type=signature_type, data=data)
        self.db.add(signature)
        self.db.flush()

        self.db.add(SignatureConsent(
            signature_id=signature.id,
            envelope_id=envelope_id,
            consent_given=consent_given,
            consented_at=datetime.utcnow(),
        ))
        self.db.flush()

        self.db.add(SignatureHash(
            signature_id=signature.id,
            envelope_id=envelope_id,
            sha256_hash=hash_signature_data(data),
        ))
        self.db.flush()
        return signature

    def verify_signature_hashes(self, envelope_id: str) -> List[dict]:
        signatures = (
            self.db.query(Signature)
            .options(selectinload(Signature.hash))
            .filter(Signature.envelope_id == envelope_id)
            .order_by(Signature.id)
            .all()
        )
        return [
            {
                "signature_id": sig.id,
                "valid": sig.hash is not None and sig.hash.sha256_hash == hash_signature_data(sig.data),
            }
            for sig in signatures
        ]

    # --- Signing tokens -----------------------------------------------------

    def create_signing_token(self, envelope_id: str, ttl: timedelta) -> SigningToken:
        token = SigningToken(
            envelope_id=envelope_id,
            token=secrets.token_urlsafe(32),
            expires_at=datetime.utcnow() + ttl,
        )
        self.db.add(token)
        self.db.flush()
        return token

    def find_valid_token(self, envelope_id: str, token: str) -> Optional[SigningToken]:
        if not token:
            return None
        return (
            self.db.query(SigningToken)
            .filter(
                SigningToken.envelope_id == envelope_id,
                SigningToken.token == token,
                SigningToken.expires_at > datetime.utcnow(),
            )
            .first()
        )

    def delete_expired_tokens(self, expired_before: datetime) -> int:
        deleted = (
            self.db.query(SigningToken)
            .filter(SigningToken.expires_at <= expired_before)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    # --- Face verification attempts ----------------------------------------

    def record_face_attempt(
        self,
        envelope_id: str,
        selfie: StoredBlob,
        document: StoredBlob,
        face_verified: bool,
        confidence: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> FaceVerificationAttempt:
        attempt = FaceVerificationAttempt(
            envelope_id=envelope_id,
            selfie_url=selfie.url,
            selfie_iv=selfie.iv,
            selfie_auth_tag=selfie.auth_tag,
            document_url=document.url,
            document_iv=document.iv,
            document_auth_tag=document.auth_tag,
            face_verified=face_verified,
            confidence=confidence,
            reason=reason,
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def record_name_attempt(
        self,
        envelope_id: str,
        document: StoredBlob,
        claimed_name: str,
        name_verified: bool,
        confidence: Optional[float] = None,
        reason: Optional[str] = None,
        extracted_name: Optional[str] = None,
    ) -> NameVerificationAttempt:
        attempt = NameVerificationAttempt(
            envelope_id=envelope_id,
            document_url=document.url,
            document_iv=document.iv,
            document_auth_tag=document.auth_tag,
            claimed_name=claimed_name,
            extracted_name=extracted_name,
            name_verified=name_verified,
            confidence=confidence,
            reason=reason,
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def list_name_attempts(self, envelope_id: str) -> List[NameVerificationAttempt]:
        return (
            self.db.query(NameVerificationAttempt)
            .filter(NameVerificationAttempt.envelope_id == envelope_id)
            .order_by(NameVerificationAttempt.id)
            .all()
        )

    def latest_face_attempt(self, envelope_id: str) -> Optional[FaceVerificationAttempt]:
        return (
            self.db.query(FaceVerificationAttempt)
            .filter(FaceVerificationAttempt.envelope_id == envelope_id)
            .order_by(FaceVerificationAttempt.attempted_at.desc(), FaceVerificationAttempt.id.desc())
            .first()
        )

    def list_face_attempts(self, envelope_id: str) -> List[FaceVerificationAttempt]:
        return (
            self.db.query(FaceVerificationAttempt)
            .filter(FaceVerificationAttempt.envelope_id == envelope_id)
            .order_by(FaceVerificationAttempt.id)
            .all()
        )
