"""Provider dispatcher — resolves a send request to a configured carrier strategy."""

from typing import Callable, Dict, Optional

import httpx
import structlog

from app.config import Settings
from app.core.exceptions import ConfigurationError, ValidationError
from app.infrastructure.providers.base import WORKFLOW_STAGED, FaxProvider
from app.infrastructure.providers.notifyre import NotifyreProvider
from app.infrastructure.providers.telnyx import TelnyxProvider
from app.infrastructure.storage import ObjectStorage

logger = structlog.get_logger(__name__)

# Spellings seen in the wild, mapped to the canonical tag
ALIASES = {
    "notifyre": "notifyre",
    "notifyr": "notifyre",
    "notifire": "notifyre",
    "telnyx": "telnyx",
    "telynx": "telnyx",
    "telenyx": "telnyx",
}


def _build_notifyre(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> FaxProvider:
    if not settings.NOTIFYRE_API_KEY:
        raise ConfigurationError("NOTIFYRE_API_KEY is not configured", {"provider": "notifyre"})
    return NotifyreProvider(
        settings.NOTIFYRE_API_KEY,
        settings.NOTIFYRE_API_URL,
        cover_page=settings.NOTIFYRE_COVER_PAGE,
        timeout=settings.CARRIER_TIMEOUT_SECONDS,
        transport=transport,
    )


def _build_telnyx(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> FaxProvider:
    if not settings.TELNYX_API_KEY:
        raise ConfigurationError("TELNYX_API_KEY is not configured", {"provider": "telnyx"})
    if not settings.TELNYX_CONNECTION_ID:
        raise ConfigurationError("TELNYX_CONNECTION_ID is not configured", {"provider": "telnyx"})
    return TelnyxProvider(
        settings.TELNYX_API_KEY,
        settings.TELNYX_API_URL,
        connection_id=settings.TELNYX_CONNECTION_ID,
        timeout=settings.CARRIER_TIMEOUT_SECONDS,
        transport=transport,
    )


REGISTRY: Dict[str, Callable[[Settings, Optional[httpx.AsyncBaseTransport]], FaxProvider]] = {
    "notifyre": _build_notifyre,
    "telnyx": _build_telnyx,
}

SUPPORTED_PROVIDERS = sorted(REGISTRY)


def canonical_tag(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return ALIASES.get(name.strip().lower())


class ProviderDispatcher:
    """Picks the carrier for a request: query parameter, then body field, then configuration."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[ObjectStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.transport = transport

    def resolve_tag(self, query_provider: Optional[str] = None, body_provider: Optional[str] = None) -> str:
        requested = query_provider or body_provider
        if requested:
            tag = canonical_tag(requested)
            if tag is None:
                raise ValidationError(
                    f"Unsupported fax provider: {requested}",
                    {"supported": SUPPORTED_PROVIDERS},
                    code="unsupported_provider",
                )
            return tag

        tag = canonical_tag(self.settings.FAX_PROVIDER)
        if tag is None:
            raise ConfigurationError(
                f"Configured FAX_PROVIDER is not supported: {self.settings.FAX_PROVIDER}",
                {"supported": SUPPORTED_PROVIDERS},
            )
        return tag

    def get(self, tag: str) -> FaxProvider:
        """Build the strategy for a canonical tag, checking its credentials.

        Enough for polling and webhooks; sending goes through resolve().
        """
        builder = REGISTRY.get(tag)
        if builder is None:
            raise ConfigurationError(f"No carrier registered for {tag}")

        return builder(self.settings, self.transport)

    def resolve(self, query_provider: Optional[str] = None, body_provider: Optional[str] = None) -> FaxProvider:
        tag = self.resolve_tag(query_provider, body_provider)
        provider = self.get(tag)
        if provider.workflow == WORKFLOW_STAGED and self.storage is None:
            raise ConfigurationError(
                f"{tag} needs object storage but none is configured",
                {"provider": tag},
            )
        logger.debug("Resolved fax provider", provider=tag, workflow=provider.workflow)
        return provider
