"""Telnyx Programmable Fax client — staged workflow, the carrier fetches media_url."""

from datetime import datetime
from typing import Optional

import structlog

from app.core.exceptions import CarrierError
from app.core.logging import mask_number
from app.domain.schemas.fax import CarrierStatusUpdate, FaxRequest
from app.infrastructure.providers.base import (
    WORKFLOW_STAGED,
    CarrierEvent,
    FaxProvider,
    SubmitResult,
    as_dict,
    as_text,
    parse_pages,
)

logger = structlog.get_logger(__name__)


class TelnyxProvider(FaxProvider):
    name = "telnyx"
    workflow = WORKFLOW_STAGED
    signature_header = "X-Telnyx-Signature"

    def __init__(self, api_key: str, base_url: str, connection_id: str, **kwargs):
        super().__init__(api_key, base_url, **kwargs)
        self.connection_id = connection_id

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, request: FaxRequest, media_url: Optional[str] = None) -> dict:
        if not media_url:
            raise ValueError("Telnyx payloads need a media URL")

        # One fax per call; Telnyx takes a single destination
        payload = {
            "connection_id": self.connection_id,
            "to": request.recipients[0],
            "from": request.sender_id or "",
            "media_url": media_url,
        }
        logger.debug("Built Telnyx payload", to=mask_number(payload["to"]))
        return payload

    async def submit(self, payload: dict) -> SubmitResult:
        response = await self._request("POST", "/v2/faxes", json=payload)
        data = as_dict(response.get("data"))
        if not data.get("id"):
            raise CarrierError(
                "Telnyx API did not return a fax ID",
                provider=self.name,
                body=str(response),
            )

        logger.info("Fax submitted to Telnyx", external_id=data["id"], status=data.get("status"))
        return SubmitResult(
            external_id=str(data["id"]),
            raw_status=as_text(data.get("status")) or "queued",
            response=response,
        )

    def _to_update(self, data: dict) -> CarrierStatusUpdate:
        raw_status = as_text(data.get("status"))
        # fax.failed events carry the interesting part in failure_reason
        if (raw_status or "").lower() == "failed" and data.get("failure_reason") in ("user_busy", "no_answer", "receiver_no_answer"):
            raw_status = data["failure_reason"]

        completed_at = None
        if data.get("completed_at"):
            try:
                completed_at = datetime.fromisoformat(str(data["completed_at"]).replace("Z", "+00:00"))
            except ValueError:
                completed_at = None

        return CarrierStatusUpdate(
            external_id=str(data.get("fax_id") or data.get("id") or ""),
            raw_status=raw_status,
            pages=parse_pages(data.get("page_count")),
            error_message=as_text(data.get("failure_reason")),
            completed_at=completed_at,
            details=data,
        )

    async def get_status(self, external_id: str) -> CarrierStatusUpdate:
        response = await self._request("GET", f"/v2/faxes/{external_id}")
        update = self._to_update(as_dict(response.get("data")))
        if not update.external_id:
            update.external_id = external_id
        return update

    def parse_event(self, body: dict) -> CarrierEvent:
        # {"data": {"event_type": "fax.delivered", "id": <event id>, "payload": {"fax_id": ..., "status": ...}}}
        data = as_dict(body.get("data"))
        update = self._to_update(as_dict(data.get("payload")))
        return CarrierEvent(
            event_id=as_text(data.get("id")),
            event_type=as_text(data.get("event_type")),
            update=update if update.external_id else None,
        )
