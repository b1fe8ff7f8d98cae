"""RevenueCat billing webhook — purchases, renewals, cancellations, transfers."""

import json

from fastapi import APIRouter, Depends, Request

from app.application.services.webhook_auth import verify_shared_secret
from app.application.services.webhook_ingester import WebhookIngester
from app.config import Settings, get_settings
from app.core.exceptions import ValidationError
from app.domain.schemas.webhook import WebhookAck
from app.interfaces.deps import get_webhook_ingester

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/revenuecat", response_model=WebhookAck)
async def revenuecat_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    ingester: WebhookIngester = Depends(get_webhook_ingester),
):
    verify_shared_secret(request.headers.get("Authorization"), settings.REVENUECAT_WEBHOOK_SECRET, "revenuecat")

    try:
        body = json.loads(await request.body())
    except ValueError as e:
        raise ValidationError("Invalid JSON body", code="invalid_json") from e

    event = body.get("event") if isinstance(body, dict) else None
    if not isinstance(event, dict) or not event.get("type"):
        raise ValidationError("Webhook has no event type", code="invalid_event")

    return ingester.ingest_billing_event(body)
