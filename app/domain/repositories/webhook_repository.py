"""
Webhook Repository Interface.
The audit log is also the idempotency table.
"""

from typing import Any, Dict, Optional, Protocol

from app.domain.models.webhook_event import WebhookEvent


class WebhookRepository(Protocol):

    def get_by_event_id(self, event_id: str) -> Optional[WebhookEvent]:
        ...

    def claim(
        self,
        source: str,
        event_id: Optional[str],
        event_type: Optional[str],
        raw_payload: Dict[str, Any],
    ) -> WebhookEvent:
        """Durably record the event before any side effect.

        Raises DuplicateEvent when the event id was already recorded.
        """
        ...

    def complete(self, event: WebhookEvent, status: str, result: Dict[str, Any]) -> WebhookEvent:
        """Store the outcome. The result and processed_at are written once."""
        ...
