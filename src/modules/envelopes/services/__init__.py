from .audit_service import AuditService
from .envelope_state_service import (
    ALLOWED_TRANSITIONS, CALLER_SETTABLE_STATUSES, SIGNABLE_STATUSES, EnvelopeStateError, EnvelopeStateService,
)
from .session_service import SessionService
from .cleanup import purge_expired_signing_tokens

__all__ = [
    'AuditService', 'ALLOWED_TRANSITIONS', 'CALLER_SETTABLE_STATUSES', 'SIGNABLE_STATUSES',
    'EnvelopeStateError', 'EnvelopeStateService', 'SessionService', 'purge_expired_signing_tokens',
]
