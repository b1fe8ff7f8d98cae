"""Notifyre fax API client — direct workflow, documents sent inline as base64."""

import base64
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from app.core.exceptions import CarrierError
from app.core.logging import mask_number
from app.domain.schemas.fax import CarrierStatusUpdate, FaxRequest
from app.infrastructure.providers.base import (
    WORKFLOW_DIRECT,
    CarrierEvent,
    FaxProvider,
    SubmitResult,
    as_dict,
    as_text,
    parse_pages,
)

logger = structlog.get_logger(__name__)


def _decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _timestamp(value: Any) -> Optional[datetime]:
    """Notifyre sends either ISO strings or unix seconds."""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class NotifyreProvider(FaxProvider):
    name = "notifyre"
    workflow = WORKFLOW_DIRECT
    signature_header = "X-Notifyre-Signature"

    def __init__(self, api_key: str, base_url: str, cover_page: str = "TestCoverPage", **kwargs):
        super().__init__(api_key, base_url, **kwargs)
        self.cover_page = cover_page

    @property
    def headers(self) -> dict:
        return {
            "x-api-token": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_payload(self, request: FaxRequest, media_url: Optional[str] = None) -> dict:
        documents = [
            {
                "Filename": attachment.filename or f"document_{index}.pdf",
                "Data": base64.b64encode(attachment.content).decode("ascii"),
            }
            for index, attachment in enumerate(request.attachments, start=1)
        ]

        payload = {
            "Faxes": {
                "Recipients": [{"Type": "fax_number", "Value": number} for number in request.recipients],
                "SendFrom": request.sender_id or "",
                "ClientReference": request.client_reference,
                "Subject": request.subject or request.message or "Fax Document",
                "IsHighQuality": False,
                "CoverPage": False,
                "Documents": documents,
            },
            # The account's cover page template is always attached
            "TemplateName": self.cover_page,
        }

        logger.debug(
            "Built Notifyre payload",
            recipients=[mask_number(n) for n in request.recipients],
            documents=len(documents),
            template=self.cover_page,
        )
        return payload

    async def submit(self, payload: dict) -> SubmitResult:
        response = await self._request("POST", "/fax/send", json=payload)

        body = as_dict(response.get("payload"))
        fax_id = body.get("faxID") or response.get("id")
        if not fax_id:
            raise CarrierError(
                "Notifyre API did not return a fax ID",
                provider=self.name,
                body=str(response),
            )

        logger.info("Fax submitted to Notifyre", external_id=fax_id, friendly_id=body.get("friendlyID"))
        return SubmitResult(
            external_id=str(fax_id),
            raw_status="Submitted",
            friendly_id=body.get("friendlyID"),
            response=response,
        )

    def _to_update(self, data: dict) -> CarrierStatusUpdate:
        return CarrierStatusUpdate(
            external_id=str(data.get("id") or data.get("ID") or data.get("faxID") or ""),
            raw_status=as_text(data.get("status") or data.get("Status")),
            pages=parse_pages(data.get("pages") if "pages" in data else data.get("Pages")),
            cost=_decimal(data.get("cost") if "cost" in data else data.get("Cost")),
            error_message=as_text(
                data.get("failedMessage")
                or data.get("errorMessage")
                or data.get("FailedMessage")
            ),
            completed_at=_timestamp(data.get("completedAt") or data.get("CompletedAt")),
            details=data,
        )

    async def get_status(self, external_id: str) -> CarrierStatusUpdate:
        response = await self._request("GET", f"/fax/sent/{external_id}")
        data = as_dict(response.get("payload")) or response
        update = self._to_update(data)
        if not update.external_id:
            update.external_id = external_id
        return update

    def parse_event(self, body: dict) -> CarrierEvent:
        # {"Event": "fax.sent", "Timestamp": ..., "Payload": {"ID": ..., "Status": ...}}
        data = as_dict(body.get("Payload") or body.get("payload"))
        update = self._to_update(data)
        return CarrierEvent(
            event_id=as_text(body.get("EventID") or body.get("eventId")),
            event_type=as_text(body.get("Event") or body.get("event")),
            update=update if update.external_id else None,
        )
