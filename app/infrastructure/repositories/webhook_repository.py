"""
SQLAlchemy Implementation of Webhook Repository.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import DuplicateEvent
from app.domain.models.webhook_event import WebhookEvent
from app.domain.repositories.webhook_repository import WebhookRepository
from app.infrastructure.repositories.base_repository import translate_errors


class SQLAlchemyWebhookRepository(WebhookRepository):
    """Webhook audit log backed by the webhook_events table."""

    def __init__(self, db):
        self.db = db

    def get_by_event_id(self, event_id: str) -> Optional[WebhookEvent]:
        with translate_errors(self.db, "load webhook event"):
            return self.db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()

    def _raise_duplicate(self, event_id: str):
        existing = self.get_by_event_id(event_id)
        raise DuplicateEvent(event_id, existing.result if existing else None)

    def claim(
        self,
        source: str,
        event_id: Optional[str],
        event_type: Optional[str],
        raw_payload: Dict[str, Any],
    ) -> WebhookEvent:
        if event_id and self.get_by_event_id(event_id) is not None:
            self._raise_duplicate(event_id)

        event = WebhookEvent(
            source=source,
            event_id=event_id,
            event_type=event_type,
            raw_payload=raw_payload,
            status="received",
        )
        with translate_errors(self.db, "record webhook event"):
            self.db.add(event)
            try:
                self.db.commit()
            except IntegrityError:
                # Lost the race against a concurrent delivery of the same id
                self.db.rollback()
                if not event_id:
                    raise
                self._raise_duplicate(event_id)
            self.db.refresh(event)
        return event

    def complete(self, event: WebhookEvent, status: str, result: Dict[str, Any]) -> WebhookEvent:
        stmt = (
            update(WebhookEvent)
            .where(WebhookEvent.id == event.id, WebhookEvent.processed_at.is_(None))
            .values(status=status, result=result, processed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        with translate_errors(self.db, "complete webhook event"):
            self.db.execute(stmt)
            self.db.commit()
            self.db.refresh(event)
        return event
