from .envelope_schemas import (
    PlaceholderCreate, PlaceholderResponse, PlaceholderValidation, RecipientCreate,
    SessionCreateResponse, SessionDetail, SessionListResponse, SessionSummary,
    VerificationResultRequest, StatusUpdateRequest, EnvelopeStatusResponse,
    SigningLinkResponse, PrepareResponse, PreparedDocument, SignatureHashCheck,
    AuditEntryResponse, DocumentResponse, SignatureResponse,
)

__all__ = [
    'PlaceholderCreate', 'PlaceholderResponse', 'PlaceholderValidation', 'RecipientCreate',
    'SessionCreateResponse', 'SessionDetail', 'SessionListResponse', 'SessionSummary',
    'VerificationResultRequest', 'StatusUpdateRequest', 'EnvelopeStatusResponse',
    'SigningLinkResponse', 'PrepareResponse', 'PreparedDocument', 'SignatureHashCheck',
    'AuditEntryResponse', 'DocumentResponse', 'SignatureResponse',
]
