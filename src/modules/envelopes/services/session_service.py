import io
import json
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError
from pydantic import ValidationError as PydanticValidationError

from modules.common.errors import NotFoundError, ValidationError
from modules.envelopes.models import Document, Envelope, Workflow, get_workflow
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository, IncomingFile
from modules.envelopes.schemas.envelope_schemas import PlaceholderCreate, RecipientCreate
from modules.storage.services.blob_store import EncryptedBlobStore, StoredBlob
from modules.webhooks.services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = ("application/pdf",)


class SessionService:

    def __init__(
        self,
        repository: EnvelopeRepository,
        blob_store: EncryptedBlobStore,
        dispatcher: EventDispatcher,
        envelope_ttl: timedelta = timedelta(days=7),
        max_file_size: int = 10 * 1024 * 1024,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.dispatcher = dispatcher
        self.envelope_ttl = envelope_ttl
        self.max_file_size = max_file_size

    # --- Validation ---------------------------------------------------------

    def validate_pdf(self, file: IncomingFile) -> None:
        """Rejects anything that is not a readable PDF within the size limit"""
        # MIME type and extension
        if file.content_type not in PDF_CONTENT_TYPES or not file.filename.lower().endswith(".pdf"):
            raise ValidationError(f"'{file.filename}' must be a PDF document")

        # Size
        if not file.content:
            raise ValidationError(f"'{file.filename}' is empty")
        if len(file.content) > self.max_file_size:
            raise ValidationError(f"'{file.filename}' exceeds the maximum size of {self.max_file_size // (1024 * 1024)} MB")

        # PDF integrity
        try:
            reader = PdfReader(io.BytesIO(file.content), strict=False)
            _ = len(reader.pages)
        except (PdfReadError, ValueError, KeyError, TypeError):
            raise ValidationError(f"'{file.filename}' is not a readable PDF")

    @staticmethod
    def parse_placeholders(raw: Optional[str]) -> List[PlaceholderCreate]:
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("signaturePlaceholders must be valid JSON")
        if not isinstance(items, list):
            raise ValidationError("signaturePlaceholders must be a JSON array")
        try:
            return [PlaceholderCreate.model_validate(item) for item in items]
        except PydanticValidationError as e:
            raise ValidationError("Invalid signature placeholder", {"errors": e.errors(include_url=False)})

    @staticmethod
    def validate_recipient(name: str, email: str) -> RecipientCreate:
        try:
            return RecipientCreate(name=(name or "").strip(), email=email)
        except PydanticValidationError as e:
            raise ValidationError("Invalid recipient", {"errors": e.errors(include_url=False)})

    # --- Operations ---------------------------------------------------------

    def create_session(
        self,
        recipient_name: str,
        recipient_email: str,
        files: List[IncomingFile],
        workflow_id: Optional[str] = None,
        placeholders_json: Optional[str] = None,
    ) -> Tuple[Envelope, Workflow]:
        recipient = self.validate_recipient(recipient_name, recipient_email)
        workflow = get_workflow(workflow_id)
        placeholders = self.parse_placeholders(placeholders_json)
        if not files:
            raise ValidationError("At least one document is required")
        for file in files:
            self.validate_pdf(file)

        envelope = self.repository.create_signing_session(
            recipient.name,
            recipient.email,
            files,
            workflow,
            self.envelope_ttl,
            placeholders,
        )
        logger.info(f"Signing session {envelope.id} created with {len(files)} document(s), workflow {workflow.id}")

        self.dispatcher.publish("envelope.created", {
            "envelopeId": envelope.id,
            "status": envelope.status.value,
            "workflowId": workflow.id,
            "recipientId": envelope.recipient_id,
        })
        return envelope, workflow

    def get_session(self, session_id: str) -> Envelope:
        return self.repository.get_session(session_id)

    def delete_session(self, session_id: str, deleted_by: Optional[str] = None) -> None:
        self.repository.delete_session(session_id, deleted_by)
        logger.info(f"Signing session {session_id} deleted by {deleted_by}")
        self.dispatcher.publish("envelope.deleted", {"envelopeId": session_id})

    def download_document(self, document_id: int) -> Tuple[Document, bytes]:
        """Decrypts a stored document; tampered ciphertext raises IntegrityError"""
        document = self.repository.get_document(document_id)
        content = self.blob_store.retrieve(document.storage_url, document.encryption_iv, document.encryption_auth_tag)
        return document, content

    def download_signed_pdf(self, session_id: str) -> bytes:
        envelope = self.repository.get_envelope(session_id)
        if not envelope.owns_signed_pdf():
            raise NotFoundError("Envelope has no signed document yet", {"sessionId": session_id})
        return self.blob_store.retrieve(envelope.signed_pdf_url, envelope.signed_pdf_iv, envelope.signed_pdf_auth_tag)

    def store_signed_pdf(self, session_id: str, file: IncomingFile) -> StoredBlob:
        self.validate_pdf(file)
        self.repository.get_envelope(session_id)
        return self.blob_store.store(f"{session_id}-signed.pdf", file.content, "application/pdf")

    def upload_standalone(self, file: IncomingFile) -> StoredBlob:
        """Standalone uploads are stored as-is, without encryption metadata"""
        if not file.content:
            raise ValidationError("No file uploaded")
        if len(file.content) > self.max_file_size:
            raise ValidationError(f"File exceeds the maximum size of {self.max_file_size // (1024 * 1024)} MB")
        return self.blob_store.store_unencrypted(file.filename, file.content, file.content_type)
