from fastapi import Depends
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from modules.common.http import get_http_client
from modules.webhooks.repositories.webhook_repository import WebhookRepository
from modules.webhooks.services.dispatcher import EventDispatcher
from modules.webhooks.services.webhook_service import WebhookService


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    repo = WebhookRepository(db)
    return WebhookService(repo, get_http_client(), get_settings().WEBHOOK_TIMEOUT_SECONDS)


def get_dispatcher(service: WebhookService = Depends(get_webhook_service)) -> EventDispatcher:
    return service.attach(EventDispatcher())
