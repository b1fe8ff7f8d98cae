"""Fax carrier strategy interface and the shared HTTP plumbing.

A provider is either "direct" (documents travel inline in the submit call) or
"staged" (the carrier fetches the document from a public URL, so it must be
uploaded to object storage first).
"""

from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel

from app.application.services.status_normalizer import NORMALIZERS, StatusNormalizer
from app.core.exceptions import CarrierError
from app.domain.fax_status import FaxStatus
from app.domain.schemas.fax import CarrierStatusUpdate, FaxRequest

logger = structlog.get_logger(__name__)

WORKFLOW_DIRECT = "direct"
WORKFLOW_STAGED = "staged"


def parse_pages(value: Any) -> Optional[int]:
    """Page counts arrive as ints or numeric strings; anything else is dropped."""
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        pages = int(str(value).strip())
    except ValueError:
        return None
    return pages if pages >= 0 else None


def as_text(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


class SubmitResult(BaseModel):
    external_id: str
    raw_status: str
    friendly_id: Optional[str] = None
    response: dict[str, Any] = {}


class CarrierEvent(BaseModel):
    """A parsed delivery webhook."""

    event_id: Optional[str] = None
    event_type: Optional[str] = None
    update: Optional[CarrierStatusUpdate] = None


class FaxProvider:
    """Base class for carrier integrations. No retries: one call, one outcome."""

    name: str = ""
    workflow: str = WORKFLOW_DIRECT
    signature_header: str = "X-Signature"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 45.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def normalizer(self) -> StatusNormalizer:
        return NORMALIZERS[self.name]

    @property
    def headers(self) -> dict:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def build_payload(self, request: FaxRequest, media_url: Optional[str] = None) -> dict:
        raise NotImplementedError

    async def submit(self, payload: dict) -> SubmitResult:
        raise NotImplementedError

    async def get_status(self, external_id: str) -> CarrierStatusUpdate:
        raise NotImplementedError

    def parse_event(self, body: dict) -> CarrierEvent:
        raise NotImplementedError

    def map_status(self, raw_status: Optional[str]) -> FaxStatus:
        return self.normalizer.normalize(raw_status)

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        """Single HTTP call to the carrier; any failure surfaces as CarrierError."""
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=json, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error("Carrier request failed", provider=self.name, method=method, path=path, error=str(e))
            raise CarrierError(f"{self.name} request failed: {e}", provider=self.name) from e

        if response.is_error:
            logger.error(
                "Carrier returned an error",
                provider=self.name,
                method=method,
                path=path,
                carrier_status=response.status_code,
                body=response.text[:500],
            )
            raise CarrierError(
                f"{self.name} API error: {response.status_code}",
                provider=self.name,
                carrier_status=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise CarrierError(
                f"{self.name} returned a non-JSON response",
                provider=self.name,
                carrier_status=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(body, dict):
            raise CarrierError(
                f"{self.name} returned an unexpected response body",
                provider=self.name,
                carrier_status=response.status_code,
                body=response.text,
            )
        return body
