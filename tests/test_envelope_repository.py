from datetime import datetime, timedelta

import pytest

from modules.common.errors import NotFoundError, ValidationError
from modules.envelopes.models import (
    AuditLogEntry, Document, Envelope, EnvelopeStatus, FaceVerificationAttempt, NameVerificationAttempt, Recipient,
    Signature, SignatureConsent, SignatureHash, SignaturePlaceholder, SignatureType, SigningToken,
    get_workflow,
)
from modules.envelopes.repositories.envelope_repository import IncomingFile, hash_signature_data
from modules.envelopes.schemas import PlaceholderCreate
from conftest import make_jpeg_bytes, make_pdf_bytes


def test_create_signing_session_creates_pending_envelope(repository, blob_store, db_session):
    envelope = repository.create_signing_session(
        "Ana García",
        "ana@example.com",
        [
            IncomingFile("uno.pdf", make_pdf_bytes(), "application/pdf"),
            IncomingFile("dos.pdf", make_pdf_bytes(2), "application/pdf"),
        ],
        get_workflow("standard"),
        timedelta(days=7),
    )

    assert envelope.status == EnvelopeStatus.PENDING
    assert envelope.workflow_id == "standard"
    assert envelope.expires_at > datetime.utcnow() + timedelta(days=6)

    documents = db_session.query(Document).filter(Document.recipient_id == envelope.recipient_id).all()
    assert len(documents) == 2
    for document in documents:
        assert document.is_encrypted
        plaintext = blob_store.retrieve(document.storage_url, document.encryption_iv, document.encryption_auth_tag)
        assert plaintext.startswith(b"%PDF")

    created = db_session.query(AuditLogEntry).filter(AuditLogEntry.envelope_id == envelope.id).all()
    assert [entry.event_type for entry in created] == ["envelope.created"]


def test_create_signing_session_requires_files(repository):
    with pytest.raises(ValidationError):
        repository.create_signing_session("Ana", "ana@example.com", [], get_workflow(), timedelta(days=7))


def test_get_session_orders_placeholders_by_page_then_x(create_envelope, repository):
    envelope = create_envelope(placeholders=[
        PlaceholderCreate(page=2, x=0.1, y=0.5),
        PlaceholderCreate(page=1, x=0.6, y=0.5),
        PlaceholderCreate(page=1, x=0.2, y=0.9),
    ], pages=2)

    session = repository.get_session(envelope.id)

    assert [(p.page_number, p.x) for p in session.placeholders] == [(1, 0.2), (1, 0.6), (2, 0.1)]
    assert session.recipient.name == "Ana García"
    assert len(session.recipient.documents) == 1


def test_get_unknown_session_raises_not_found(repository):
    with pytest.raises(NotFoundError):
        repository.get_session("does-not-exist")


def test_add_signature_persists_consent_and_hash(create_envelope, repository, db_session):
    envelope = create_envelope()

    signature = repository.add_signature(envelope.id, SignatureType.DRAWN, "data:image/png;base64,AAAA", True)
    db_session.commit()

    consent = db_session.query(SignatureConsent).filter(SignatureConsent.signature_id == signature.id).one()
    digest = db_session.query(SignatureHash).filter(SignatureHash.signature_id == signature.id).one()
    assert consent.consent_given is True
    assert digest.sha256_hash == hash_signature_data("data:image/png;base64,AAAA")
    assert repository.verify_signature_hashes(envelope.id) == [{"signature_id": signature.id, "valid": True}]


def test_altered_signature_fails_hash_verification(create_envelope, repository, db_session):
    envelope = create_envelope()
    signature = repository.add_signature(envelope.id, SignatureType.UPLOADED, "original", True)
    db_session.commit()

    signature.data = "altered"
    db_session.commit()

    assert repository.verify_signature_hashes(envelope.id) == [{"signature_id": signature.id, "valid": False}]


def test_mark_placeholder_signed_only_once(create_envelope, repository):
    envelope = create_envelope(placeholders=[PlaceholderCreate(page=1, x=0.1, y=0.1)])
    placeholder_id = repository.list_placeholders(envelope.id)[0].id

    assert repository.mark_placeholder_signed(envelope.id, placeholder_id) is True
    assert repository.mark_placeholder_signed(envelope.id, placeholder_id) is False
    assert repository.placeholder_progress(envelope.id)["all_signed"] is True


def test_mark_placeholder_of_other_envelope_is_ignored(create_envelope, repository):
    first = create_envelope(placeholders=[PlaceholderCreate(page=1, x=0.1, y=0.1)])
    second = create_envelope()
    placeholder_id = repository.list_placeholders(first.id)[0].id

    assert repository.mark_placeholder_signed(second.id, placeholder_id) is False
    assert repository.list_placeholders(first.id)[0].is_signed is False


def test_signing_tokens_expire(create_envelope, repository, db_session):
    envelope = create_envelope()
    valid = repository.create_signing_token(envelope.id, timedelta(hours=24))
    expired = repository.create_signing_token(envelope.id, timedelta(hours=-1))
    db_session.commit()

    assert repository.find_valid_token(envelope.id, valid.token) is not None
    assert repository.find_valid_token(envelope.id, expired.token) is None
    assert repository.find_valid_token(envelope.id, "") is None
    assert repository.find_valid_token("other-envelope", valid.token) is None


def test_delete_session_removes_every_dependent_row(create_envelope, repository, blob_store, db_session):
    envelope = create_envelope(placeholders=[PlaceholderCreate(page=1, x=0.1, y=0.1)])
    envelope_id, recipient_id = envelope.id, envelope.recipient_id
    repository.create_signing_token(envelope_id, timedelta(hours=24))
    repository.add_signature(envelope_id, SignatureType.DRAWN, "signature-data", True)
    db_session.commit()
    selfie = blob_store.store("selfie.jpg", make_jpeg_bytes(), "image/jpeg")
    document = blob_store.store("id.jpg", make_jpeg_bytes(), "image/jpeg")
    repository.record_face_attempt(envelope_id, selfie, document, True, 0.93, "same person")
    repository.record_name_attempt(envelope_id, document, "Ana García", True, 0.9, "match")

    repository.delete_session(envelope_id, deleted_by="admin@example.com")

    assert db_session.query(Envelope).filter(Envelope.id == envelope_id).count() == 0
    assert db_session.query(Recipient).filter(Recipient.id == recipient_id).count() == 0
    assert db_session.query(Document).filter(Document.recipient_id == recipient_id).count() == 0
    for model in (SigningToken, FaceVerificationAttempt, NameVerificationAttempt, Signature, SignatureConsent, SignatureHash, SignaturePlaceholder):
        assert db_session.query(model).filter(model.envelope_id == envelope_id).count() == 0
    with pytest.raises(NotFoundError):
        repository.get_session(envelope_id)
    with pytest.raises(NotFoundError):
        blob_store.retrieve(selfie.url, selfie.iv, selfie.auth_tag)

    events = [entry.event_type for entry in db_session.query(AuditLogEntry).filter(AuditLogEntry.envelope_id == envelope_id)]
    assert "session.deleted" in events


def test_delete_session_leaves_referenced_foreign_blobs_alone(create_envelope, repository, blob_store, db_session):
    owner = create_envelope()
    other = create_envelope()
    foreign_document = other.recipient.documents[0]
    owner.signed_pdf_reference = foreign_document.storage_url
    db_session.commit()

    repository.delete_session(owner.id)

    content = blob_store.retrieve(
        foreign_document.storage_url, foreign_document.encryption_iv, foreign_document.encryption_auth_tag
    )
    assert content.startswith(b"%PDF")


def test_delete_unknown_session_raises_not_found(repository):
    with pytest.raises(NotFoundError):
        repository.delete_session("missing")


def test_latest_face_attempt_is_the_most_recent(create_envelope, repository, blob_store):
    envelope = create_envelope()
    image = blob_store.store("id.jpg", make_jpeg_bytes(), "image/jpeg")
    repository.record_face_attempt(envelope.id, image, image, False, 0.2, "different person")
    second = repository.record_face_attempt(envelope.id, image, image, True, 0.9, "same person")

    assert repository.latest_face_attempt(envelope.id).id == second.id
    assert len(repository.list_face_attempts(envelope.id)) == 2


def test_delete_expired_tokens_keeps_live_ones(create_envelope, repository, db_session):
    envelope = create_envelope()
    repository.create_signing_token(envelope.id, timedelta(days=-3))
    live = repository.create_signing_token(envelope.id, timedelta(hours=1))
    db_session.commit()

    deleted = repository.delete_expired_tokens(datetime.utcnow() - timedelta(days=1))

    assert deleted == 1
    remaining = db_session.query(SigningToken).all()
    assert [token.token for token in remaining] == [live.token]
