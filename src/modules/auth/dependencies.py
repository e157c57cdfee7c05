from typing import Optional

from fastapi import Depends, Header, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database import get_db
from modules.auth.models.admin_user import AdminUser
from modules.auth.models.api_key import ApiKey
from modules.auth.services.api_key_service import ApiKeyService
from modules.auth.services.auth_service import AuthService
from modules.common.errors import AuthError
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository

security = HTTPBearer(auto_error=False)


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AdminUser:
    """Dependency para obtener el admin autenticado"""
    if credentials is None:
        raise AuthError("Missing bearer token")
    admin = AuthService.get_current_admin(db, credentials.credentials)
    if admin is None:
        raise AuthError("Invalid or expired token")
    return admin


def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> ApiKey:
    return ApiKeyService(db).authenticate(x_api_key)


class SigningAccess:
    """
    Credenciales de un endpoint del flujo de firma: una API key o un token de
    firma emitido para el sobre. Se validan al llamar a authorize() porque el
    id del sobre puede venir en el cuerpo de la petición.
    """

    def __init__(self, db: Session, api_key: Optional[str], token: Optional[str]):
        self.db = db
        self.api_key = api_key
        self.token = token

    def authorize(self, envelope_id: Optional[str]) -> str:
        """Devuelve el actor que se registra en la auditoría"""
        if self.api_key:
            key = ApiKeyService(self.db).authenticate(self.api_key)
            return f"api_key:{key.name}"
        if self.token and envelope_id:
            if EnvelopeRepository(self.db).find_valid_token(envelope_id, self.token):
                return "signing_token"
            raise AuthError("Invalid or expired signing token")
        raise AuthError("An API key or signing token is required")


def get_signing_access(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    x_signing_token: Optional[str] = Header(None, alias="X-Signing-Token"),
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> SigningAccess:
    return SigningAccess(db, x_api_key, x_signing_token or token)
