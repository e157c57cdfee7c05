# modules/webhooks/controllers/webhook_controller.py
from typing import List

from fastapi import APIRouter, Depends, status

from modules.auth.dependencies import require_api_key
from modules.webhooks.dependencies import get_webhook_service
from modules.webhooks.models.schemas import WebhookRegisterRequest, WebhookResponse
from modules.webhooks.services.webhook_service import WebhookService

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post(
    "/register",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a webhook subscription"
)
def register_webhook(
    payload: WebhookRegisterRequest,
    service: WebhookService = Depends(get_webhook_service)
):
    return service.register(str(payload.url), payload.events)


@router.get("", response_model=List[WebhookResponse], summary="List webhook subscriptions")
def list_webhooks(service: WebhookService = Depends(get_webhook_service)):
    return service.list_webhooks()


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a webhook subscription")
def delete_webhook(webhook_id: int, service: WebhookService = Depends(get_webhook_service)):
    service.unregister(webhook_id)
