import io

from PyPDF2 import PdfReader

from modules.envelopes.models import SignatureType
from modules.envelopes.services.audit_service import AuditService
from modules.signing.services.audit_trail_service import AuditTrailService
from conftest import make_jpeg_bytes


def test_audit_trail_lists_events_signatures_and_attempts(create_envelope, repository, blob_store, db_session):
    envelope = create_envelope()
    repository.add_signature(envelope.id, SignatureType.DRAWN, "signature-data", True)
    db_session.commit()
    image = blob_store.store("id.jpg", make_jpeg_bytes(), "image/jpeg")
    repository.record_face_attempt(envelope.id, image, image, True, 0.92, "same person")

    pdf = AuditTrailService(repository, AuditService(db_session)).render(envelope.id)

    text = "\n".join(page.extract_text() for page in PdfReader(io.BytesIO(pdf)).pages)
    assert "Audit Trail" in text
    assert envelope.id in text
    assert "envelope.created" in text
    assert "drawn" in text
    assert "verified=True" in text


def test_audit_entries_survive_without_envelope(db_session):
    audit = AuditService(db_session)

    entry = audit.record("api_key.created", user_id="admin@example.com", details={"apiKeyId": 1})
    db_session.commit()

    assert entry.id is not None
    assert [e.event_type for e in audit.list_entries()] == ["api_key.created"]


def test_audit_trail_lists_document_name_checks(create_envelope, repository, blob_store, db_session):
    envelope = create_envelope()
    image = blob_store.store("id.jpg", make_jpeg_bytes(), "image/jpeg")
    repository.record_name_attempt(envelope.id, image, "Ana Perez", True, 0.9, "match", "ANA PEREZ")

    pdf = AuditTrailService(repository, AuditService(db_session)).render(envelope.id)

    text = "\n".join(page.extract_text() for page in PdfReader(io.BytesIO(pdf)).pages)
    assert "Document name checks" in text
    assert "Ana Perez" in text
