from datetime import datetime, timedelta

import pytest

from modules.common.errors import StateConflictError, ValidationError
from modules.envelopes.models import AuditLogEntry, EnvelopeStatus, SignatureType, Workflow
from modules.envelopes.schemas import PlaceholderCreate
from modules.envelopes.services.envelope_state_service import (
    ALLOWED_TRANSITIONS, TERMINAL_STATUSES, EnvelopeStateError, EnvelopeStateService,
)
from modules.storage import StoredBlob


@pytest.fixture
def service(repository, dispatcher):
    return EnvelopeStateService(repository, dispatcher, frontend_url="https://sign.example.com/")


def _verified(service, envelope):
    return service.apply_verification(envelope.id, {"nameVerified": True, "faceVerified": True})


def test_pending_cannot_jump_to_completed():
    assert not EnvelopeStateService.can_change_state(EnvelopeStatus.PENDING, EnvelopeStatus.COMPLETED)
    assert EnvelopeStateService.can_change_state(EnvelopeStatus.PENDING, EnvelopeStatus.VERIFIED)


def test_terminal_statuses_have_no_exits():
    assert TERMINAL_STATUSES == {
        EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNING_DECLINED, EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()


def test_every_status_has_declared_transitions():
    assert set(ALLOWED_TRANSITIONS) == set(EnvelopeStatus)


def test_verification_passes_when_all_required_checks_pass(service, create_envelope, dispatcher, db_session):
    envelope = create_envelope()

    updated = _verified(service, envelope)

    assert updated.status == EnvelopeStatus.VERIFIED
    assert dispatcher.published == ["envelope.verified"]
    events = [e.event_type for e in db_session.query(AuditLogEntry).filter(AuditLogEntry.envelope_id == envelope.id)]
    assert "envelope.status_changed" in events


def test_verification_fails_when_face_does_not_match(service, create_envelope, dispatcher):
    envelope = create_envelope()

    updated = service.apply_verification(envelope.id, {"nameVerified": True, "faceVerified": False})

    assert updated.status == EnvelopeStatus.VERIFICATION_FAILED
    assert dispatcher.published == ["envelope.verification_failed"]


def test_missing_result_counts_as_failed(service, create_envelope):
    envelope = create_envelope()

    updated = service.apply_verification(envelope.id, {"nameVerified": True})

    assert updated.status == EnvelopeStatus.VERIFICATION_FAILED


def test_workflow_without_face_match_ignores_face_result(service, create_envelope):
    envelope = create_envelope(workflow_id="document_only")

    updated = service.apply_verification(envelope.id, {"nameVerified": True, "faceVerified": None})

    assert updated.status == EnvelopeStatus.VERIFIED


def test_signature_only_workflow_verifies_trivially(service, create_envelope):
    envelope = create_envelope(workflow_id="signature_only")

    updated = service.apply_verification(envelope.id, {})

    assert updated.status == EnvelopeStatus.VERIFIED


def test_failed_verification_can_be_retried(service, create_envelope):
    envelope = create_envelope()
    service.apply_verification(envelope.id, {"nameVerified": False, "faceVerified": False})

    updated = _verified(service, envelope)

    assert updated.status == EnvelopeStatus.VERIFIED


def test_verified_envelope_cannot_be_verified_again(service, create_envelope):
    envelope = create_envelope()
    _verified(service, envelope)

    with pytest.raises(StateConflictError):
        _verified(service, envelope)


def test_signing_link_requires_verified_or_prepared(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(StateConflictError):
        service.issue_signing_link(envelope.id)


def test_signing_link_is_issued_for_verified_envelope(service, create_envelope, repository, dispatcher):
    envelope = create_envelope()
    _verified(service, envelope)

    token, link = service.issue_signing_link(envelope.id, actor="api_key:tests")

    assert link == f"https://sign.example.com/sign?sessionId={envelope.id}&token={token.token}"
    assert token.expires_at - datetime.utcnow() > timedelta(hours=23)
    assert repository.find_valid_token(envelope.id, token.token) is not None
    assert dispatcher.published[-1] == "signing_link.issued"


def test_signing_link_for_expired_envelope_marks_it_expired(service, create_envelope, repository):
    envelope = create_envelope(ttl=timedelta(seconds=-1))
    envelope.status = EnvelopeStatus.VERIFIED
    repository.db.commit()

    with pytest.raises(EnvelopeStateError):
        service.issue_signing_link(envelope.id)

    assert repository.get_envelope(envelope.id).status == EnvelopeStatus.EXPIRED


def test_prepare_requires_verified_status(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(StateConflictError):
        service.prepare(envelope.id)


def test_prepare_returns_document_metadata_once(service, create_envelope):
    envelope = create_envelope(placeholders=[PlaceholderCreate(page=1, x=0.1, y=0.1), PlaceholderCreate(page=1, x=0.5, y=0.5)])
    _verified(service, envelope)

    prepared, documents = service.prepare(envelope.id)

    assert prepared.status == EnvelopeStatus.PREPARED
    assert documents == [{"documentId": documents[0]["documentId"], "filename": "contrato.pdf", "signatureFields": 2}]
    with pytest.raises(StateConflictError):
        service.prepare(envelope.id)


def test_completion_with_signature_requires_consent(service, create_envelope):
    envelope = create_envelope()
    _verified(service, envelope)

    with pytest.raises(ValidationError):
        service.update_status(envelope.id, EnvelopeStatus.COMPLETED, signature_data="sig", consent_given=False)


def test_completion_persists_signature_and_reports_placeholders(service, create_envelope, dispatcher):
    envelope = create_envelope(placeholders=[PlaceholderCreate(page=1, x=0.1, y=0.1)])
    _verified(service, envelope)

    updated, signature = service.update_status(
        envelope.id,
        EnvelopeStatus.COMPLETED,
        signature_type=SignatureType.DRAWN,
        signature_data="data:image/png;base64,AAAA",
        consent_given=True,
    )

    assert updated.status == EnvelopeStatus.COMPLETED
    assert signature.consent.consent_given is True
    assert signature.hash is not None
    assert dispatcher.published[-1] == "envelope.completed"


def test_internal_statuses_cannot_be_requested(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(ValidationError):
        service.update_status(envelope.id, EnvelopeStatus.VERIFIED)


def test_pending_envelope_cannot_be_completed(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(StateConflictError):
        service.update_status(envelope.id, EnvelopeStatus.COMPLETED)


def test_deferred_signing_can_still_complete(service, create_envelope):
    envelope = create_envelope()
    _verified(service, envelope)
    service.update_status(envelope.id, EnvelopeStatus.SIGNING_DEFERRED, reason="later")

    updated, _ = service.update_status(envelope.id, EnvelopeStatus.COMPLETED)

    assert updated.status == EnvelopeStatus.COMPLETED


def test_voided_envelope_is_final(service, create_envelope):
    envelope = create_envelope()
    service.update_status(envelope.id, EnvelopeStatus.VOIDED, reason="sent by mistake")

    with pytest.raises(StateConflictError):
        _verified(service, envelope)


def test_finalize_records_signed_pdf(service, create_envelope, blob_store, example_pdf):
    envelope = create_envelope()
    _verified(service, envelope)
    stored = blob_store.store("signed.pdf", example_pdf, "application/pdf")

    updated = service.finalize(envelope.id, stored)

    assert updated.status == EnvelopeStatus.COMPLETED
    assert updated.signed_pdf_url == stored.url
    assert blob_store.retrieve(updated.signed_pdf_url, updated.signed_pdf_iv, updated.signed_pdf_auth_tag) == example_pdf


def test_finalize_rejects_pending_envelope(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(StateConflictError):
        service.finalize(envelope.id, StoredBlob(url="file:///tmp/none.pdf"))


def test_publish_failure_does_not_fail_transition(service, create_envelope, dispatcher):
    def broken_listener(event_name, payload):
        raise RuntimeError("receiver down")

    dispatcher.subscribe("*", broken_listener)
    envelope = create_envelope()

    updated = _verified(service, envelope)

    assert updated.status == EnvelopeStatus.VERIFIED


def test_workflow_without_document_verification_requires_no_checks():
    workflow = Workflow(id="kiosk", name="Kiosk", document_verification_required=False)

    assert workflow.required_checks() == []
    assert Workflow(id="full", name="Full").required_checks() == ["nameVerified", "faceVerified"]


@pytest.mark.parametrize("status", [EnvelopeStatus.VERIFIED, EnvelopeStatus.PREPARED, EnvelopeStatus.SIGNING_DEFERRED])
def test_open_envelopes_are_signable(service, create_envelope, repository, status):
    envelope = create_envelope()
    envelope.status = status
    repository.db.commit()

    assert service.ensure_signable(envelope.id).id == envelope.id


@pytest.mark.parametrize("status", [EnvelopeStatus.PENDING, EnvelopeStatus.VERIFICATION_FAILED, EnvelopeStatus.COMPLETED])
def test_envelopes_outside_signing_window_are_not_signable(service, create_envelope, repository, status):
    envelope = create_envelope()
    envelope.status = status
    repository.db.commit()

    with pytest.raises(StateConflictError):
        service.ensure_signable(envelope.id)


def test_expired_envelope_is_not_signable(service, create_envelope, repository):
    envelope = create_envelope(ttl=timedelta(seconds=-1))
    envelope.status = EnvelopeStatus.VERIFIED
    repository.db.commit()

    with pytest.raises(EnvelopeStateError):
        service.ensure_signable(envelope.id)

    assert repository.get_envelope(envelope.id).status == EnvelopeStatus.EXPIRED


def test_caller_signed_pdf_url_is_kept_as_reference_only(service, create_envelope, dispatcher):
    envelope = create_envelope()
    _verified(service, envelope)

    updated, _ = service.update_status(
        envelope.id, EnvelopeStatus.COMPLETED, signed_pdf_url="https://files.example.com/signed.pdf"
    )

    assert updated.signed_pdf_reference == "https://files.example.com/signed.pdf"
    assert updated.signed_pdf_url is None
    assert updated.owns_signed_pdf() is False
