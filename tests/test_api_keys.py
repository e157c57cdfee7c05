from datetime import datetime, timedelta

import pytest

from modules.auth.models.api_key import ApiKey
from modules.auth.services.api_key_service import KEY_PREFIX, PARTIAL_KEY_LENGTH, ApiKeyService
from modules.auth.services.auth_service import AuthService
from modules.common.errors import AuthError, NotFoundError, ValidationError
from modules.envelopes.models import AuditLogEntry


@pytest.fixture
def service(db_session):
    return ApiKeyService(db_session)


def test_created_key_is_only_stored_hashed(service, db_session):
    api_key, plaintext = service.create_key("backoffice", created_by="admin@example.com")

    assert plaintext.startswith(KEY_PREFIX)
    stored = db_session.get(ApiKey, api_key.id)
    assert stored.key_hash != plaintext
    assert plaintext not in stored.key_hash
    assert stored.partial_key == plaintext[:PARTIAL_KEY_LENGTH]


def test_valid_key_authenticates_and_updates_last_used(service):
    api_key, plaintext = service.create_key("backoffice")

    authenticated = service.authenticate(plaintext)

    assert authenticated.id == api_key.id
    assert authenticated.last_used is not None


@pytest.mark.parametrize("presented", [None, "", "esk_wrong-key-value"])
def test_missing_or_wrong_keys_are_rejected(service, presented):
    service.create_key("backoffice")

    with pytest.raises(AuthError):
        service.authenticate(presented)


def test_key_with_same_prefix_but_different_secret_is_rejected(service):
    _, plaintext = service.create_key("backoffice")

    with pytest.raises(AuthError):
        service.authenticate(plaintext[:PARTIAL_KEY_LENGTH] + "tampered")


def test_revoked_key_is_rejected_and_audited(service, db_session):
    api_key, plaintext = service.create_key("backoffice")

    service.revoke_key(api_key.id, revoked_by="admin@example.com")

    with pytest.raises(AuthError):
        service.authenticate(plaintext)
    events = [entry.event_type for entry in db_session.query(AuditLogEntry).order_by(AuditLogEntry.id)]
    assert events == ["api_key.created", "api_key.revoked"]


def test_expired_key_is_rejected(service, db_session):
    api_key, plaintext = service.create_key("short-lived", expires_in_days=1)
    api_key.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db_session.commit()

    with pytest.raises(AuthError):
        service.authenticate(plaintext)


def test_key_requires_name_and_positive_expiry(service):
    with pytest.raises(ValidationError):
        service.create_key("  ")
    with pytest.raises(ValidationError):
        service.create_key("backoffice", expires_in_days=0)


def test_revoke_unknown_key(service):
    with pytest.raises(NotFoundError):
        service.revoke_key(12345)


def test_bootstrap_admin_is_created_once(db_session):
    first = AuthService.ensure_bootstrap_admin(db_session, "root@example.com", "s3cret-pass")
    second = AuthService.ensure_bootstrap_admin(db_session, "other@example.com", "another-pass")

    assert first is not None
    assert second is None
    assert AuthService.authenticate_admin(db_session, "root@example.com", "s3cret-pass").id == first.id


def test_admin_token_round_trip(db_session):
    admin = AuthService.ensure_bootstrap_admin(db_session, "root@example.com", "s3cret-pass")
    token = AuthService.create_access_token({"sub": admin.email}, timedelta(minutes=5))

    assert AuthService.get_current_admin(db_session, token).id == admin.id
    assert AuthService.get_current_admin(db_session, token + "x") is None
