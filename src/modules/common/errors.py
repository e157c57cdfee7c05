"""
Domain error taxonomy shared by every feature module.

Controllers let these propagate; the handlers registered in
``modules.common.handlers`` turn them into JSON responses.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error"""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(AppError):
    """Missing or malformed input"""
    status_code = 400
    code = "validation_error"


class AuthError(AppError):
    """Missing or invalid credentials"""
    status_code = 401
    code = "auth_error"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class StateConflictError(AppError):
    """Operation not valid for the envelope's current status or expiry"""
    status_code = 403
    code = "state_conflict"


class UpstreamError(AppError):
    """Vision service or blob store failure"""
    status_code = 500
    code = "upstream_error"


class IntegrityError(AppError):
    """Decryption failed or stored content no longer matches its tag/hash"""
    status_code = 422
    code = "integrity_error"


class ConfigurationError(AppError):
    """Raised at startup; never mapped to a request"""
    code = "configuration_error"


class VerificationResponseMalformed(UpstreamError):
    code = "verification_response_malformed"


class DocumentUnreadable(ValidationError):
    code = "document_unreadable"
