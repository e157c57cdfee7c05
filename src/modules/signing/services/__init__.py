from .pdf_signing_engine import PdfSigningEngine, SigningReport, compute_placement
from .audit_trail_service import AuditTrailService

__all__ = ['PdfSigningEngine', 'SigningReport', 'compute_placement', 'AuditTrailService']
