"""Carrier delivery webhooks — Notifyre and Telnyx status callbacks."""

import json

from fastapi import APIRouter, Depends, Request

from app.application.services.provider_dispatcher import ProviderDispatcher
from app.application.services.webhook_auth import verify_signature
from app.application.services.webhook_ingester import WebhookIngester
from app.config import Settings, get_settings
from app.core.exceptions import ValidationError
from app.domain.schemas.webhook import WebhookAck
from app.interfaces.deps import get_dispatcher, get_webhook_ingester

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _read_json(request: Request) -> dict:
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise ValidationError("Invalid JSON body", code="invalid_json") from e
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object", code="invalid_json")
    return body


async def _handle(tag: str, secret: str, request: Request, dispatcher: ProviderDispatcher, ingester: WebhookIngester):
    provider = dispatcher.get(tag)
    verify_signature(await request.body(), request.headers.get(provider.signature_header), secret, tag)
    body = await _read_json(request)
    return ingester.ingest_carrier_event(provider, body)


@router.post("/notifyre", response_model=WebhookAck)
async def notifyre_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    ingester: WebhookIngester = Depends(get_webhook_ingester),
):
    return await _handle("notifyre", settings.NOTIFYRE_WEBHOOK_SECRET, request, dispatcher, ingester)


@router.post("/telnyx", response_model=WebhookAck)
async def telnyx_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    ingester: WebhookIngester = Depends(get_webhook_ingester),
):
    return await _handle("telnyx", settings.TELNYX_WEBHOOK_SECRET, request, dispatcher, ingester)
