"""Webhook ingester — idempotent handling of carrier and billing notifications.

Claim first: the raw event is committed to the audit log before any side
effect. A repeated event id returns the stored result without touching faxes
or credits again. Once the event is recorded the sender always gets an
acknowledgement; side-effect failures end up on the audit row and in the log.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import structlog

from app.application.services import credit_ledger
from app.application.services.account_merger import merge_accounts
from app.application.services.fax_service import apply_status_update
from app.core.exceptions import AppError, DuplicateEvent
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.repositories.product_repository import ProductRepository
from app.domain.repositories.transfer_repository import TransferRepository
from app.domain.repositories.user_repository import UserRepository
from app.domain.repositories.webhook_repository import WebhookRepository
from app.domain.schemas.webhook import WebhookAck
from app.infrastructure.providers.base import FaxProvider

logger = structlog.get_logger(__name__)

STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"
STATUS_IGNORED = "ignored"

PURCHASE_EVENTS = {
    "INITIAL_PURCHASE",
    "RENEWAL",
    "UNCANCELLATION",
    "NON_RENEWING_PURCHASE",
    "PRODUCT_CHANGE",
}
DEACTIVATION_EVENTS = {"CANCELLATION", "EXPIRATION"}
RECORD_ONLY_EVENTS = {"BILLING_ISSUE"}
TRANSFER_EVENT = "TRANSFER"

ANONYMOUS_PREFIX = "$RCAnonymousID:"

Outcome = Tuple[str, Dict[str, Any]]


def _from_ms(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None


class WebhookIngester:

    def __init__(
        self,
        webhook_repo: WebhookRepository,
        fax_repo: Optional[FaxRepository] = None,
        credit_repo: Optional[CreditRepository] = None,
        product_repo: Optional[ProductRepository] = None,
        transfer_repo: Optional[TransferRepository] = None,
        user_repo: Optional[UserRepository] = None,
    ):
        self.webhook_repo = webhook_repo
        self.fax_repo = fax_repo
        self.credit_repo = credit_repo
        self.product_repo = product_repo
        self.transfer_repo = transfer_repo
        self.user_repo = user_repo

    def ingest(
        self,
        source: str,
        event_id: Optional[str],
        event_type: Optional[str],
        raw_payload: Dict[str, Any],
        handler: Callable[[], Outcome],
    ) -> WebhookAck:
        log = logger.bind(source=source, event_id=event_id, event_type=event_type)

        try:
            event = self.webhook_repo.claim(source, event_id, event_type, raw_payload)
        except DuplicateEvent as dup:
            log.info("Duplicate webhook ignored")
            return WebhookAck(duplicate=True, event_id=event_id, result=dup.result)

        try:
            status, result = handler()
        except AppError as e:
            log.error("Webhook side effect failed", code=e.code, error=e.message)
            status, result = STATUS_FAILED, {"error": e.message, "code": e.code}
        except Exception as e:
            log.exception("Webhook handler crashed")
            status, result = STATUS_FAILED, {"error": str(e), "code": "internal_error"}

        event = self.webhook_repo.complete(event, status, result)
        log.info("Webhook processed", status=status)
        return WebhookAck(event_id=event_id, result=event.result or result)

    # Carriers

    def ingest_carrier_event(self, provider: FaxProvider, body: Dict[str, Any]) -> WebhookAck:
        parsed = provider.parse_event(body)

        def handle() -> Outcome:
            if parsed.update is None:
                return STATUS_IGNORED, {"action": "ignored", "reason": "no fax id in payload"}

            record = self.fax_repo.get_by_external_id(parsed.update.external_id)
            if record is None:
                return STATUS_IGNORED, {
                    "action": "ignored",
                    "reason": "unknown fax",
                    "external_id": parsed.update.external_id,
                }

            record = apply_status_update(self.fax_repo, record, parsed.update, source="webhook")
            return STATUS_PROCESSED, {
                "action": "status_updated",
                "fax_id": record.id,
                "status": record.status,
                "original_status": record.original_status,
            }

        return self.ingest(provider.name, parsed.event_id, parsed.event_type, body, handle)

    # Billing

    def ingest_billing_event(self, body: Dict[str, Any]) -> WebhookAck:
        event = body.get("event") or {}
        event_type = event.get("type")
        return self.ingest(
            "revenuecat",
            event.get("id"),
            event_type,
            body,
            lambda: self._handle_billing(event_type, event),
        )

    def _handle_billing(self, event_type: Optional[str], event: Dict[str, Any]) -> Outcome:
        if event_type in PURCHASE_EVENTS:
            return self._handle_purchase(event)
        if event_type in DEACTIVATION_EVENTS:
            return self._handle_deactivation(event)
        if event_type in RECORD_ONLY_EVENTS:
            return STATUS_PROCESSED, {"action": "recorded"}
        if event_type == TRANSFER_EVENT:
            return self._handle_transfer(event)
        return STATUS_IGNORED, {"action": "ignored", "reason": f"unhandled event type {event_type}"}

    @staticmethod
    def _user_id(event: Dict[str, Any]) -> Optional[str]:
        return event.get("original_app_user_id") or event.get("app_user_id")

    def _handle_purchase(self, event: Dict[str, Any]) -> Outcome:
        user_id = self._user_id(event)
        product_id = event.get("new_product_id") or event.get("product_id")
        if not user_id or not product_id:
            return STATUS_FAILED, {"error": "missing user or product id"}

        product = self.product_repo.get_active(product_id)
        if product is None:
            logger.warning("Purchase for unknown product", product_id=product_id, user_id=user_id)
            return STATUS_FAILED, {"error": "unknown product", "product_id": product_id}

        self.user_repo.ensure_user(user_id, is_anonymous=user_id.startswith(ANONYMOUS_PREFIX))

        entitlement_id = event.get("entitlement_id") or next(iter(event.get("entitlement_ids") or []), None)
        grant = credit_ledger.apply_purchase(
            self.credit_repo,
            user_id,
            product,
            purchased_at=_from_ms(event.get("purchased_at_ms")) or datetime.now(timezone.utc),
            subscription_id=event.get("original_transaction_id") or event.get("transaction_id"),
            entitlement_id=entitlement_id,
            fallback_expires_at=_from_ms(event.get("expires_at_ms")),
        )
        return STATUS_PROCESSED, {
            "action": "grant_applied",
            "grant_id": grant.id,
            "user_id": user_id,
            "product_id": product_id,
            "page_limit": grant.page_limit,
        }

    def _handle_deactivation(self, event: Dict[str, Any]) -> Outcome:
        user_id = self._user_id(event)
        if not user_id:
            return STATUS_FAILED, {"error": "missing user id"}
        count = credit_ledger.deactivate_grants(self.credit_repo, user_id, event.get("product_id"))
        return STATUS_PROCESSED, {"action": "grants_deactivated", "user_id": user_id, "count": count}

    def _handle_transfer(self, event: Dict[str, Any]) -> Outcome:
        sources = event.get("transferred_from") or []
        targets = event.get("transferred_to") or []
        if not sources or not targets:
            return STATUS_FAILED, {"error": "transfer without source or target"}

        target = targets[0]
        results = [
            merge_accounts(self.transfer_repo, self.user_repo, source, target).model_dump()
            for source in sources
        ]
        status = STATUS_PROCESSED if all(r["success"] for r in results) else STATUS_FAILED
        return status, {"action": "transfer", "to_user_id": target, "transfers": results}
