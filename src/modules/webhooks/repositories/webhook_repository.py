from typing import List, Optional
from sqlalchemy.orm import Session

from modules.webhooks.models.webhook import Webhook

class WebhookRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, webhook: Webhook) -> Webhook:
        self.db.add(webhook)
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

    def find_all(self) -> List[Webhook]:
        return self.db.query(Webhook).order_by(Webhook.id).all()

    def find_by_event(self, event_name: str) -> List[Webhook]:
        # JSON containment differs between SQLite and PostgreSQL, filter in Python
        return [hook for hook in self.find_all() if hook.subscribes_to(event_name)]

    def delete(self, webhook_id: int) -> Optional[Webhook]:
        hook = self.db.get(Webhook, webhook_id)
        if not hook:
            return None
        self.db.delete(hook)
        self.db.commit()
        return hook
