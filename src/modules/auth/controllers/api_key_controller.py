from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.auth.dependencies import get_current_admin
from modules.auth.models.admin_user import AdminUser
from modules.auth.schemas.auth_schemas import (
    ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyListResponse, ApiKeyResponse
)
from modules.auth.services.api_key_service import ApiKeyService

router = APIRouter(prefix="/admin/api-keys", tags=["admin"])


def get_api_key_service(db: Session = Depends(get_db)) -> ApiKeyService:
    return ApiKeyService(db)


@router.get("", response_model=ApiKeyListResponse)
def list_api_keys(
    service: ApiKeyService = Depends(get_api_key_service),
    current_admin: AdminUser = Depends(get_current_admin)
):
    keys = service.list_keys()
    return ApiKeyListResponse(apiKeys=keys, total=len(keys))


@router.post("", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_api_key(
    payload: ApiKeyCreate,
    service: ApiKeyService = Depends(get_api_key_service),
    current_admin: AdminUser = Depends(get_current_admin)
):
    """La clave en texto plano solo se devuelve en esta respuesta"""
    api_key, plaintext = service.create_key(payload.name, payload.expires_in_days, created_by=current_admin.email)
    return ApiKeyCreatedResponse(
        **ApiKeyResponse.model_validate(api_key).model_dump(),
        apiKey=plaintext,
    )


@router.delete("/{key_id}", response_model=ApiKeyResponse)
def revoke_api_key(
    key_id: int,
    service: ApiKeyService = Depends(get_api_key_service),
    current_admin: AdminUser = Depends(get_current_admin)
):
    return service.revoke_key(key_id, revoked_by=current_admin.email)
