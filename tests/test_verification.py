import json

import httpx
import pytest

from modules.common.errors import (
    ConfigurationError, UpstreamError, ValidationError, VerificationResponseMalformed,
)
from modules.envelopes.models import AuditLogEntry, FaceVerificationAttempt, NameVerificationAttempt
from modules.envelopes.repositories.envelope_repository import IncomingFile
from modules.verification.services.verification_adapter import VerificationAdapter
from modules.verification.services.verification_service import VerificationService
from conftest import make_jpeg_bytes, make_png_bytes


@pytest.fixture
def adapter(vision_client):
    return VerificationAdapter(vision_client, "https://vision.test/v1/chat/completions", "key", "model", timeout=5)


@pytest.fixture
def service(repository, blob_store, adapter, dispatcher):
    return VerificationService(repository, blob_store, adapter, dispatcher)


def _jpeg(name="image.jpg"):
    return IncomingFile(name, make_jpeg_bytes(), "image/jpeg")


def test_adapter_requires_api_key(vision_client):
    with pytest.raises(ConfigurationError):
        VerificationAdapter(vision_client, "https://vision.test", None, "model")


def test_document_name_verdict_is_normalized(adapter, vision_responses):
    vision_responses.append({
        "nameVerified": "true",
        "confidence": 87,
        "reason": "Name matches",
        "extractedName": "ANA GARCIA",
        "documentType": "passport",
    })

    verdict = adapter.verify_document_name(make_jpeg_bytes(), "Ana García")

    assert verdict.name_verified is True
    assert verdict.confidence == pytest.approx(0.87)
    assert verdict.extracted_name == "ANA GARCIA"
    assert verdict.to_dict()["documentType"] == "passport"


def test_request_carries_prompt_and_images():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"faceVerified": false}'}}]})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    adapter = VerificationAdapter(client, "https://vision.test/v1/chat/completions", "secret", "vision-model")

    adapter.verify_face(make_jpeg_bytes(), make_png_bytes(), "image/jpeg", "image/png")

    assert captured["auth"] == "Bearer secret"
    assert captured["body"]["model"] == "vision-model"
    content = captured["body"]["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert content[2]["image_url"]["url"].startswith("data:image/png;base64,")


def test_verdict_embedded_in_prose_is_accepted(adapter, vision_responses):
    vision_responses.append('After comparing: {"faceVerified": true, "confidence": 0.8, "reason": "match"} done.')

    verdict = adapter.verify_face(make_jpeg_bytes(), make_jpeg_bytes())

    assert verdict.face_verified is True


def test_unparseable_face_answer_fails_closed(adapter, vision_responses):
    vision_responses.append("Looks like the same person to me!")

    with pytest.raises(VerificationResponseMalformed):
        adapter.verify_face(make_jpeg_bytes(), make_jpeg_bytes())


def test_answer_without_verdict_field_fails_closed(adapter, vision_responses):
    vision_responses.append({"confidence": 0.99, "reason": "same person"})

    with pytest.raises(VerificationResponseMalformed):
        adapter.verify_face(make_jpeg_bytes(), make_jpeg_bytes())


def test_backend_error_is_an_upstream_error(adapter, vision_responses):
    vision_responses.append(httpx.Response(503, json={"error": "overloaded"}))

    with pytest.raises(UpstreamError) as excinfo:
        adapter.verify_face(make_jpeg_bytes(), make_jpeg_bytes())
    assert not isinstance(excinfo.value, VerificationResponseMalformed)


def test_face_verification_records_attempt_with_encrypted_images(service, create_envelope, vision_responses, blob_store, dispatcher, db_session):
    envelope = create_envelope()
    vision_responses.append({"faceVerified": True, "confidence": 0.95, "reason": "same person"})
    selfie = _jpeg("selfie.jpg")

    verdict, attempt = service.verify_face(selfie, _jpeg("id.jpg"), envelope.id, actor="signing_token")

    assert verdict.face_verified is True
    assert attempt.face_verified is True
    assert attempt.selfie_iv and attempt.document_auth_tag
    assert blob_store.retrieve(attempt.selfie_url, attempt.selfie_iv, attempt.selfie_auth_tag) == selfie.content
    assert dispatcher.published == ["verification.face"]
    events = [e.event_type for e in db_session.query(AuditLogEntry).filter(AuditLogEntry.envelope_id == envelope.id)]
    assert "verification.face" in events


def test_malformed_face_answer_is_still_recorded(service, create_envelope, vision_responses, db_session, dispatcher):
    envelope = create_envelope()
    vision_responses.append("no json here")

    with pytest.raises(VerificationResponseMalformed):
        service.verify_face(_jpeg("selfie.jpg"), _jpeg("id.jpg"), envelope.id)

    attempts = db_session.query(FaceVerificationAttempt).filter(FaceVerificationAttempt.envelope_id == envelope.id).all()
    assert len(attempts) == 1
    assert attempts[0].face_verified is False
    assert attempts[0].reason.startswith("verification_response_malformed")
    assert dispatcher.published == []


def test_face_verification_rejects_non_images(service, create_envelope):
    envelope = create_envelope()

    with pytest.raises(ValidationError):
        service.verify_face(IncomingFile("selfie.pdf", b"%PDF-1.4", "application/pdf"), _jpeg(), envelope.id)


def test_document_name_without_envelope_is_not_stored(service, vision_responses, dispatcher):
    vision_responses.append({"nameVerified": False, "confidence": 0.3, "reason": "different name"})

    verdict, attempt = service.verify_document_name(_jpeg("id.jpg"), "Ana García")

    assert verdict.name_verified is False
    assert attempt is None
    assert dispatcher.published == ["verification.document_name"]


def test_document_name_requires_claimed_name(service):
    with pytest.raises(ValidationError):
        service.verify_document_name(_jpeg("id.jpg"), "   ")


def _stored_files(tmp_path):
    return [path for path in (tmp_path / "blobs").rglob("*") if path.is_file()]


def test_document_name_with_envelope_records_attempt(service, create_envelope, vision_responses, blob_store, repository):
    envelope = create_envelope()
    vision_responses.append({"nameVerified": True, "confidence": 0.9, "reason": "match", "extractedName": "ANA GARCIA"})
    image = _jpeg("id.jpg")

    verdict, attempt = service.verify_document_name(image, "  Ana García ", envelope_id=envelope.id)

    assert verdict.name_verified is True
    assert attempt.claimed_name == "Ana García"
    assert attempt.extracted_name == "ANA GARCIA"
    assert blob_store.retrieve(attempt.document_url, attempt.document_iv, attempt.document_auth_tag) == image.content
    assert [a.id for a in repository.list_name_attempts(envelope.id)] == [attempt.id]


def test_malformed_document_name_answer_is_still_recorded(service, create_envelope, vision_responses, db_session):
    envelope = create_envelope()
    vision_responses.append("I cannot read this document.")

    with pytest.raises(VerificationResponseMalformed):
        service.verify_document_name(_jpeg("id.jpg"), "Ana García", envelope_id=envelope.id)

    attempts = db_session.query(NameVerificationAttempt).filter(NameVerificationAttempt.envelope_id == envelope.id).all()
    assert len(attempts) == 1
    assert attempts[0].name_verified is False
    assert attempts[0].document_iv is not None


def test_deleting_session_removes_document_name_images(service, create_envelope, vision_responses, repository, tmp_path):
    envelope = create_envelope()
    vision_responses.append({"nameVerified": True, "confidence": 0.9, "reason": "match"})
    service.verify_document_name(_jpeg("id.jpg"), "Ana García", envelope_id=envelope.id)
    assert len(_stored_files(tmp_path)) == 2

    repository.delete_session(envelope.id)

    assert _stored_files(tmp_path) == []
    assert repository.db.query(NameVerificationAttempt).count() == 0


@pytest.mark.parametrize("raw, expected", [
    ("NaN", 0.0),
    ("Infinity", 0.0),
    ("1.5", 1.0),
    ("0.42", 0.42),
    ("87", 0.87),
    ("250", 1.0),
    ("-3", 0.0),
])
def test_confidence_is_normalized_to_unit_range(adapter, vision_responses, raw, expected):
    vision_responses.append('{"faceVerified": true, "confidence": %s, "reason": "ok"}' % raw)

    verdict = adapter.verify_face(make_jpeg_bytes(), make_jpeg_bytes())

    assert verdict.confidence == pytest.approx(expected)
