"""Webhook authentication — HMAC signatures for carriers, shared secret for billing."""

import base64
import hashlib
import hmac
from typing import Optional

import structlog

from app.core.exceptions import ConfigurationError, UnauthorizedError

logger = structlog.get_logger(__name__)


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the exact request body."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str, source: str) -> None:
    if not secret:
        raise ConfigurationError(f"Webhook secret for {source} is not configured")
    if not signature:
        logger.warning("Webhook without signature", source=source)
        raise UnauthorizedError("Missing webhook signature")

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected, signature.strip()):
        logger.warning("Webhook signature mismatch", source=source)
        raise UnauthorizedError("Invalid webhook signature")


def verify_shared_secret(authorization: Optional[str], secret: str, source: str) -> None:
    if not secret:
        raise ConfigurationError(f"Webhook secret for {source} is not configured")
    if not authorization or not hmac.compare_digest(authorization.encode("utf-8"), secret.encode("utf-8")):
        logger.warning("Webhook authorization rejected", source=source, has_header=bool(authorization))
        raise UnauthorizedError("Unauthorized")
