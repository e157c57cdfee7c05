# src/modules/envelopes/controllers/admin_controller.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from modules.auth.dependencies import get_current_admin
from modules.auth.models.admin_user import AdminUser
from modules.envelopes.dependencies import get_audit_service, get_envelope_repository, get_session_service
from modules.envelopes.models import EnvelopeStatus
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.envelopes.schemas import AuditEntryResponse, SessionListResponse, SessionSummary
from modules.envelopes.services.audit_service import AuditService
from modules.envelopes.services.session_service import SessionService

router = APIRouter(
    prefix="/admin",
    tags=["admin"]
)


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    status_filter: Optional[EnvelopeStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    current_admin: AdminUser = Depends(get_current_admin)
):
    sessions, total = repository.list_sessions(status_filter, skip, limit)
    return SessionListResponse(
        sessions=[SessionSummary.model_validate(envelope) for envelope in sessions],
        total=total,
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    service: SessionService = Depends(get_session_service),
    current_admin: AdminUser = Depends(get_current_admin)
):
    """Elimina el sobre y todo lo que depende de él, incluidos los blobs"""
    service.delete_session(session_id, deleted_by=current_admin.email)


@router.get("/audit-log", response_model=List[AuditEntryResponse])
def get_audit_log(
    envelope_id: Optional[str] = Query(None, alias="envelopeId"),
    limit: int = Query(500, ge=1, le=5000),
    audit: AuditService = Depends(get_audit_service),
    current_admin: AdminUser = Depends(get_current_admin)
):
    return audit.list_entries(envelope_id=envelope_id, limit=limit)
