# modules/webhooks/services/webhook_service.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from modules.common.errors import NotFoundError, ValidationError
from modules.webhooks.models.webhook import Webhook
from modules.webhooks.repositories.webhook_repository import WebhookRepository
from modules.webhooks.services.dispatcher import ALL_EVENTS, EventDispatcher

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    webhook_id: int
    url: str
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class WebhookService:
    def __init__(self, repository: WebhookRepository, http_client: httpx.Client, timeout: float = 5.0):
        self.webhook_repository = repository
        self.http_client = http_client
        self.timeout = timeout

    def register(self, url: str, events: List[str]) -> Webhook:
        events = [event.strip() for event in events if event and event.strip()]
        if not events:
            raise ValidationError("At least one event name is required")
        if not url.startswith(("http://", "https://")):
            raise ValidationError("Webhook URL must be http(s)")
        return self.webhook_repository.save(Webhook(url=url, events=sorted(set(events))))

    def list_webhooks(self) -> List[Webhook]:
        return self.webhook_repository.find_all()

    def unregister(self, webhook_id: int) -> Webhook:
        hook = self.webhook_repository.delete(webhook_id)
        if not hook:
            raise NotFoundError("Webhook not found")
        return hook

    def deliver(self, event_name: str, payload: Dict[str, Any]) -> List[DeliveryResult]:
        """
        POSTs the event to every subscriber. Each delivery is independent:
        failures are logged and reported in the result, never raised or retried.
        """
        body = {
            "event": event_name,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "data": payload,
        }
        results = []
        for hook in self.webhook_repository.find_by_event(event_name):
            try:
                response = self.http_client.post(hook.url, json=body, timeout=self.timeout)
                response.raise_for_status()
                results.append(DeliveryResult(hook.id, hook.url, True, response.status_code))
            except httpx.HTTPStatusError as e:
                logger.warning(f"Webhook {hook.id} ({hook.url}) answered {e.response.status_code} for '{event_name}'")
                results.append(DeliveryResult(hook.id, hook.url, False, e.response.status_code, str(e)))
            except httpx.HTTPError as e:
                logger.warning(f"Webhook {hook.id} ({hook.url}) unreachable for '{event_name}': {e}")
                results.append(DeliveryResult(hook.id, hook.url, False, error=str(e)))
        return results

    def handle_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Dispatcher listener"""
        logger.info(f"Event '{event_name}' for envelope {payload.get('envelopeId')}")
        self.deliver(event_name, payload)

    def attach(self, dispatcher: EventDispatcher) -> EventDispatcher:
        dispatcher.subscribe(ALL_EVENTS, self.handle_event)
        return dispatcher
