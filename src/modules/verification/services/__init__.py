from .verdict_parser import Malformed, Parsed, parse_verdict
from .verification_adapter import DocumentNameVerdict, FaceVerdict, VerificationAdapter
from .verification_service import VerificationService

__all__ = [
    'Malformed', 'Parsed', 'parse_verdict',
    'DocumentNameVerdict', 'FaceVerdict', 'VerificationAdapter', 'VerificationService',
]
