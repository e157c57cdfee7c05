from .auth_schemas import (
    LoginRequest, TokenResponse, AdminCreate, AdminResponse,
    ApiKeyCreate, ApiKeyResponse, ApiKeyCreatedResponse, ApiKeyListResponse
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'AdminCreate', 'AdminResponse',
    'ApiKeyCreate', 'ApiKeyResponse', 'ApiKeyCreatedResponse', 'ApiKeyListResponse'
]
