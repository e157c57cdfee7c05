"""
Envelope lifecycle state machine

Owns the authoritative status of an envelope. Every accepted transition is
audited inside the same transaction and, after commit, published to the
dispatcher. Publishing is best-effort; the audit entry is the record.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from modules.common.errors import StateConflictError, ValidationError
from modules.envelopes.models.envelope import Envelope, EnvelopeStatus
from modules.envelopes.models.signature import Signature, SignatureType
from modules.envelopes.models.signing_token import SigningToken
from modules.envelopes.models.workflow import get_workflow
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.services.audit_service import AuditService
from modules.storage.services.blob_store import StoredBlob
from modules.webhooks.services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class EnvelopeStateError(StateConflictError):
    """Exception for envelope state transition errors"""
    pass


ALLOWED_TRANSITIONS: Dict[EnvelopeStatus, frozenset] = {
    EnvelopeStatus.PENDING: frozenset({
        EnvelopeStatus.VERIFIED, EnvelopeStatus.VERIFICATION_FAILED,
        EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }),
    EnvelopeStatus.VERIFICATION_FAILED: frozenset({
        EnvelopeStatus.VERIFIED, EnvelopeStatus.VERIFICATION_FAILED,
        EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }),
    EnvelopeStatus.VERIFIED: frozenset({
        EnvelopeStatus.PREPARED, EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNING_DECLINED,
        EnvelopeStatus.SIGNING_DEFERRED, EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }),
    EnvelopeStatus.PREPARED: frozenset({
        EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNING_DECLINED,
        EnvelopeStatus.SIGNING_DEFERRED, EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }),
    EnvelopeStatus.SIGNING_DEFERRED: frozenset({
        EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNING_DECLINED,
        EnvelopeStatus.VOIDED, EnvelopeStatus.EXPIRED,
    }),
    EnvelopeStatus.COMPLETED: frozenset(),
    EnvelopeStatus.SIGNING_DECLINED: frozenset(),
    EnvelopeStatus.VOIDED: frozenset(),
    EnvelopeStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)
SIGNING_LINK_STATUSES = frozenset({EnvelopeStatus.VERIFIED, EnvelopeStatus.PREPARED})
SIGNABLE_STATUSES = frozenset({EnvelopeStatus.VERIFIED, EnvelopeStatus.PREPARED, EnvelopeStatus.SIGNING_DEFERRED})
VERIFIABLE_STATUSES = frozenset({EnvelopeStatus.PENDING, EnvelopeStatus.VERIFICATION_FAILED})
# Statuses a caller may request through the status endpoint
CALLER_SETTABLE_STATUSES = frozenset({
    EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNING_DECLINED,
    EnvelopeStatus.SIGNING_DEFERRED, EnvelopeStatus.VOIDED,
})


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class EnvelopeStateService:

    def __init__(
        self,
        repository: EnvelopeRepository,
        dispatcher: EventDispatcher,
        audit: Optional[AuditService] = None,
        signing_link_ttl: timedelta = timedelta(hours=24),
        frontend_url: str = "http://localhost:3000",
    ):
        self.repository = repository
        self.db = repository.db
        self.dispatcher = dispatcher
        self.audit = audit or AuditService(repository.db)
        self.signing_link_ttl = signing_link_ttl
        self.frontend_url = frontend_url.rstrip("/")

    @staticmethod
    def can_change_state(current: EnvelopeStatus, new_state: EnvelopeStatus) -> bool:
        return new_state in ALLOWED_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def get_allowed_transitions(envelope: Envelope) -> List[EnvelopeStatus]:
        return sorted(ALLOWED_TRANSITIONS[envelope.status], key=lambda status: status.value)

    def _transition(
        self,
        envelope: Envelope,
        new_state: EnvelopeStatus,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Envelope:
        """Validates the edge, audits, commits, then publishes"""
        if not self.can_change_state(envelope.status, new_state):
            raise EnvelopeStateError(
                f"Envelope cannot change from {envelope.status.value} to {new_state.value}",
                {"status": envelope.status.value, "requested": new_state.value},
            )

        previous_state = envelope.status
        envelope.status = new_state
        envelope.updated_at = datetime.utcnow()

        details = dict(details or {})
        details.update({"from": previous_state.value, "to": new_state.value})
        self.audit.record(
            "envelope.status_changed",
            envelope_id=envelope.id,
            user_id=actor,
            ip_address=ip_address,
            details=details,
        )
        self.db.commit()
        logger.info(f"Envelope {envelope.id} changed from {previous_state.value} to {new_state.value}")

        payload = {
            "envelopeId": envelope.id,
            "previousStatus": previous_state.value,
            "status": new_state.value,
            "updatedAt": _iso(envelope.updated_at),
        }
        payload.update({key: value for key, value in details.items() if key not in ("from", "to")})
        self.dispatcher.publish(f"envelope.{new_state.value}", payload)
        return envelope

    def ensure_not_expired(self, envelope: Envelope, now: Optional[datetime] = None) -> None:
        """Lazily moves an elapsed envelope to EXPIRED and rejects the operation"""
        if envelope.status == EnvelopeStatus.EXPIRED:
            raise EnvelopeStateError("Envelope has expired", {"expiresAt": _iso(envelope.expires_at)})
        if not envelope.is_expired(now):
            return
        if envelope.status not in TERMINAL_STATUSES:
            self._transition(envelope, EnvelopeStatus.EXPIRED, actor="system", details={"expiresAt": _iso(envelope.expires_at)})
        raise EnvelopeStateError("Envelope has expired", {"expiresAt": _iso(envelope.expires_at)})

    def ensure_signable(self, envelope_id: str) -> Envelope:
        """Rejects stamping signatures on an expired envelope or one not open for signing"""
        envelope = self.repository.get_envelope(envelope_id)
        self.ensure_not_expired(envelope)
        if envelope.status not in SIGNABLE_STATUSES:
            raise EnvelopeStateError(
                f"Envelope is not open for signing (current: {envelope.status.value})",
                {"status": envelope.status.value},
            )
        return envelope

    # --- Verification -------------------------------------------------------

    def apply_verification(
        self,
        envelope_id: str,
        results: Dict[str, Optional[bool]],
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Envelope:
        """
        pending/verification_failed -> verified when every check the workflow
        requires is true, otherwise -> verification_failed
        """
        envelope = self.repository.get_envelope(envelope_id)
        if envelope.status not in VERIFIABLE_STATUSES:
            raise EnvelopeStateError(
                f"Envelope in status {envelope.status.value} cannot be verified",
                {"status": envelope.status.value},
            )

        workflow = get_workflow(envelope.workflow_id)
        required = workflow.required_checks()
        failed = [check for check in required if results.get(check) is not True]
        new_state = EnvelopeStatus.VERIFICATION_FAILED if failed else EnvelopeStatus.VERIFIED

        return self._transition(
            envelope,
            new_state,
            actor=actor,
            ip_address=ip_address,
            details={
                "workflowId": workflow.id,
                "results": {key: value for key, value in results.items() if value is not None},
                "failedChecks": failed,
            },
        )

    # --- Preparation --------------------------------------------------------

    def prepare(self, envelope_id: str, actor: Optional[str] = None, ip_address: Optional[str] = None) -> Tuple[Envelope, List[dict]]:
        """verified -> prepared; requires VERIFIED strictly, so it cannot be re-run"""
        envelope = self.repository.get_session(envelope_id)
        if envelope.status != EnvelopeStatus.VERIFIED:
            raise EnvelopeStateError(
                f"Envelope must be verified to be prepared (current: {envelope.status.value})",
                {"status": envelope.status.value},
            )

        signature_fields = len(envelope.placeholders)
        prepared = [
            {
                "documentId": document.id,
                "filename": document.filename,
                "signatureFields": signature_fields or 1,
            }
            for document in envelope.recipient.documents
        ]
        self._transition(envelope, EnvelopeStatus.PREPARED, actor=actor, ip_address=ip_address,
                         details={"documents": len(prepared)})
        return envelope, prepared

    # --- Signing link -------------------------------------------------------

    def issue_signing_link(
        self,
        envelope_id: str,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Tuple[SigningToken, str]:
        envelope = self.repository.get_envelope(envelope_id)
        self.ensure_not_expired(envelope)
        if envelope.status not in SIGNING_LINK_STATUSES:
            raise EnvelopeStateError(
                f"Signing links require a verified or prepared envelope (current: {envelope.status.value})",
                {"status": envelope.status.value},
            )

        token = self.repository.create_signing_token(envelope.id, self.signing_link_ttl)
        self.audit.record(
            "signing_link.issued",
            envelope_id=envelope.id,
            user_id=actor,
            ip_address=ip_address,
            details={"tokenExpiresAt": _iso(token.expires_at)},
        )
        self.db.commit()

        link = f"{self.frontend_url}/sign?sessionId={envelope.id}&token={token.token}"
        self.dispatcher.publish("signing_link.issued", {
            "envelopeId": envelope.id,
            "expiresAt": _iso(token.expires_at),
        })
        return token, link

    # --- Signing outcome ----------------------------------------------------

    def update_status(
        self,
        envelope_id: str,
        new_state: EnvelopeStatus,
        signature_type: Optional[SignatureType] = None,
        signature_data: Optional[str] = None,
        consent_given: Optional[bool] = None,
        reason: Optional[str] = None,
        signed_pdf_url: Optional[str] = None,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Tuple[Envelope, Optional[Signature]]:
        """
        Applies a caller-requested signing outcome. Completion is not gated on
        every placeholder being signed; the progress is reported in the event.
        """
        if new_state not in CALLER_SETTABLE_STATUSES:
            raise ValidationError(
                f"Status {new_state.value} cannot be set directly",
                {"allowed": sorted(status.value for status in CALLER_SETTABLE_STATUSES)},
            )

        envelope = self.repository.get_envelope(envelope_id)
        self.ensure_not_expired(envelope)
        if not self.can_change_state(envelope.status, new_state):
            raise EnvelopeStateError(
                f"Envelope cannot change from {envelope.status.value} to {new_state.value}",
                {"status": envelope.status.value, "requested": new_state.value},
            )

        signature = None
        if signature_data:
            if consent_given is not True:
                raise ValidationError("Express consent to sign electronically is required")
            signature = self.repository.add_signature(
                envelope.id,
                signature_type or SignatureType.DRAWN,
                signature_data,
                consent_given,
            )

        if signed_pdf_url:
            envelope.signed_pdf_reference = signed_pdf_url

        details = {}
        if reason:
            details["reason"] = reason
        if signature is not None:
            details["signatureId"] = signature.id
        if new_state == EnvelopeStatus.COMPLETED:
            details["placeholders"] = self.repository.placeholder_progress(envelope.id)
            if signed_pdf_url:
                details["signedPdfReference"] = signed_pdf_url

        self._transition(envelope, new_state, actor=actor, ip_address=ip_address, details=details)
        return envelope, signature

    def finalize(
        self,
        envelope_id: str,
        signed_pdf: StoredBlob,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Envelope:
        """Records the stored signed PDF and completes the envelope"""
        envelope = self.repository.get_envelope(envelope_id)
        self.ensure_not_expired(envelope)
        if not self.can_change_state(envelope.status, EnvelopeStatus.COMPLETED):
            raise EnvelopeStateError(
                f"Envelope in status {envelope.status.value} cannot be finalized",
                {"status": envelope.status.value},
            )

        envelope.signed_pdf_url = signed_pdf.url
        envelope.signed_pdf_iv = signed_pdf.iv
        envelope.signed_pdf_auth_tag = signed_pdf.auth_tag
        return self._transition(
            envelope,
            EnvelopeStatus.COMPLETED,
            actor=actor,
            ip_address=ip_address,
            details={
                "signedPdfUrl": signed_pdf.url,
                "placeholders": self.repository.placeholder_progress(envelope.id),
            },
        )
