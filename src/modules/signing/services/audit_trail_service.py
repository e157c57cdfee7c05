import io
import json
from datetime import datetime
from typing import List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from modules.envelopes.models import AuditLogEntry, Envelope
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.services.audit_service import AuditService

PAGE_MARGIN = 50
LINE_HEIGHT = 14
WRAP_AT = 95


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "-"


class _Writer:
    """Minimal line-oriented text layout on top of a reportlab canvas"""

    def __init__(self, buffer):
        self.canvas = canvas.Canvas(buffer, pagesize=A4)
        self.width, self.height = A4
        self.y = self.height - PAGE_MARGIN

    def _ensure_room(self, lines: int = 1):
        if self.y - lines * LINE_HEIGHT < PAGE_MARGIN:
            self.canvas.showPage()
            self.y = self.height - PAGE_MARGIN

    def heading(self, text: str, size: int = 12):
        self._ensure_room(2)
        self.y -= LINE_HEIGHT / 2
        self.canvas.setFont("Helvetica-Bold", size)
        self.canvas.drawString(PAGE_MARGIN, self.y, text)
        self.y -= LINE_HEIGHT + 2

    def line(self, text: str, indent: int = 0):
        self.canvas.setFont("Helvetica", 9)
        chunks = [text[i:i + WRAP_AT] for i in range(0, len(text), WRAP_AT)] or [""]
        for chunk in chunks:
            self._ensure_room()
            self.canvas.drawString(PAGE_MARGIN + indent, self.y, chunk)
            self.y -= LINE_HEIGHT

    def finish(self):
        self.canvas.showPage()
        self.canvas.save()


class AuditTrailService:
    """Renders the audit certificate of an envelope as a PDF"""

    def __init__(self, repository: EnvelopeRepository, audit: AuditService):
        self.repository = repository
        self.audit = audit

    def render(self, envelope_id: str) -> bytes:
        envelope = self.repository.get_session(envelope_id)
        entries = self.audit.list_entries(envelope_id=envelope_id)
        attempts = self.repository.list_face_attempts(envelope_id)
        name_checks = self.repository.list_name_attempts(envelope_id)

        buffer = io.BytesIO()
        out = _Writer(buffer)
        out.heading("Audit Trail", size=16)
        self._summary(out, envelope)
        self._signatures(out, envelope)

        out.heading("Face verification attempts")
        if not attempts:
            out.line("No face verification attempts.")
        for attempt in attempts:
            confidence = "-" if attempt.confidence is None else f"{attempt.confidence:.2f}"
            out.line(
                f"#{attempt.id} {_fmt(attempt.attempted_at)}  verified={attempt.face_verified}  "
                f"confidence={confidence}"
            )
            if attempt.reason:
                out.line(f"reason: {attempt.reason}", indent=12)

        out.heading("Document name checks")
        if not name_checks:
            out.line("No document name checks.")
        for check in name_checks:
            out.line(
                f"#{check.id} {_fmt(check.attempted_at)}  verified={check.name_verified}  "
                f"claimed={check.claimed_name}  read={check.extracted_name or '-'}"
            )

        self._events(out, entries)
        out.finish()
        return buffer.getvalue()

    @staticmethod
    def _summary(out: _Writer, envelope: Envelope):
        out.line(f"Envelope: {envelope.id}")
        out.line(f"Workflow: {envelope.workflow_id}")
        out.line(f"Status: {envelope.status.value}")
        out.line(f"Recipient: {envelope.recipient.name} <{envelope.recipient.email}>")
        out.line(f"Created: {_fmt(envelope.created_at)}")
        out.line(f"Expires: {_fmt(envelope.expires_at)}")
        out.line(f"Generated: {_fmt(datetime.utcnow())}")
        out.heading("Documents")
        for document in envelope.recipient.documents:
            state = "encrypted" if document.is_encrypted else "plain"
            out.line(f"#{document.id} {document.filename} ({document.file_size} bytes, {state})")

    @staticmethod
    def _signatures(out: _Writer, envelope: Envelope):
        out.heading("Signatures")
        if not envelope.signatures:
            out.line("No signatures recorded.")
        for signature in envelope.signatures:
            consent = signature.consent.consent_given if signature.consent else False
            digest = signature.hash.sha256_hash if signature.hash else "-"
            out.line(
                f"#{signature.id} {signature.signature_type.value}  {_fmt(signature.created_at)}  consent={consent}"
            )
            out.line(f"sha256: {digest}", indent=12)

    @staticmethod
    def _events(out: _Writer, entries: List[AuditLogEntry]):
        out.heading("Events")
        for entry in entries:
            actor = entry.user_id or "system"
            ip = entry.ip_address or "-"
            out.line(f"{_fmt(entry.timestamp)}  {entry.event_type}  by {actor} from {ip}")
            if entry.details:
                out.line(json.dumps(entry.details, default=str, sort_keys=True), indent=12)
