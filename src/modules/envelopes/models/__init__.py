from .recipient import Recipient
from .document import Document
from .placeholder import SignaturePlaceholder
from .envelope import Envelope, EnvelopeStatus
from .signature import Signature, SignatureType, SignatureConsent, SignatureHash
from .signing_token import SigningToken
from .face_attempt import FaceVerificationAttempt
from .name_attempt import NameVerificationAttempt
from .audit_log import AuditLogEntry
from .workflow import Workflow, WORKFLOWS, get_workflow

__all__ = [
    'Recipient', 'Document', 'SignaturePlaceholder', 'Envelope', 'EnvelopeStatus',
    'Signature', 'SignatureType', 'SignatureConsent', 'SignatureHash', 'SigningToken',
    'FaceVerificationAttempt', 'NameVerificationAttempt', 'AuditLogEntry', 'Workflow', 'WORKFLOWS', 'get_workflow',
]
