import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from modules.auth.models.api_key import ApiKey
from modules.auth.services.auth_service import pwd_context
from modules.common.errors import AuthError, NotFoundError, ValidationError
from modules.envelopes.services.audit_service import AuditService

logger = logging.getLogger(__name__)

KEY_PREFIX = "esk_"
PARTIAL_KEY_LENGTH = 12


class ApiKeyService:

    def __init__(self, db_session: Session, audit: Optional[AuditService] = None):
        self.db = db_session
        self.audit = audit or AuditService(db_session)

    @staticmethod
    def generate_key() -> str:
        return KEY_PREFIX + secrets.token_urlsafe(32)

    def create_key(
        self,
        name: str,
        expires_in_days: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> Tuple[ApiKey, str]:
        """Returns the stored row and the plaintext key; the plaintext is not kept anywhere"""
        if not name or not name.strip():
            raise ValidationError("API key name is required")
        if expires_in_days is not None and expires_in_days <= 0:
            raise ValidationError("expires_in_days must be positive")

        plaintext = self.generate_key()
        api_key = ApiKey(
            name=name.strip(),
            key_hash=pwd_context.hash(plaintext),
            partial_key=plaintext[:PARTIAL_KEY_LENGTH],
            expires_at=datetime.utcnow() + timedelta(days=expires_in_days) if expires_in_days else None,
        )
        self.db.add(api_key)
        self.db.flush()
        self.audit.record(
            "api_key.created",
            user_id=created_by,
            details={"apiKeyId": api_key.id, "name": api_key.name, "partialKey": api_key.partial_key},
        )
        self.db.commit()
        self.db.refresh(api_key)
        logger.info(f"API key {api_key.id} ('{api_key.name}') created")
        return api_key, plaintext

    def list_keys(self) -> List[ApiKey]:
        return self.db.query(ApiKey).order_by(ApiKey.created_at.desc(), ApiKey.id.desc()).all()

    def revoke_key(self, key_id: int, revoked_by: Optional[str] = None) -> ApiKey:
        api_key = self.db.get(ApiKey, key_id)
        if not api_key:
            raise NotFoundError("API key not found")
        if not api_key.revoked:
            api_key.revoked = True
            self.audit.record(
                "api_key.revoked",
                user_id=revoked_by,
                details={"apiKeyId": api_key.id, "name": api_key.name},
            )
            self.db.commit()
            logger.info(f"API key {api_key.id} revoked")
        return api_key

    def authenticate(self, plaintext: Optional[str]) -> ApiKey:
        """
        Validates a presented key against the stored bcrypt hashes.
        The display prefix narrows the candidates before the (slow) hash check.
        """
        if not plaintext:
            raise AuthError("Missing API key")

        candidates = (
            self.db.query(ApiKey)
            .filter(ApiKey.partial_key == plaintext[:PARTIAL_KEY_LENGTH], ApiKey.revoked.is_(False))
            .all()
        )
        now = datetime.utcnow()
        for candidate in candidates:
            if not candidate.is_usable(now):
                continue
            if pwd_context.verify(plaintext, candidate.key_hash):
                candidate.last_used = now
                self.db.commit()
                return candidate
        raise AuthError("Invalid API key")
