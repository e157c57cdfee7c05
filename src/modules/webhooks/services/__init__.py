from .dispatcher import EventDispatcher
from .webhook_service import DeliveryResult, WebhookService

__all__ = ['EventDispatcher', 'DeliveryResult', 'WebhookService']
