"""Object storage for staged fax documents.

Carriers that fetch documents by URL need every attachment put somewhere public
first. Two backends: a local directory (served by a static file host) and a
generic HTTP object store addressed with PUT/HEAD/DELETE.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

import httpx
import structlog

from app.config import Settings
from app.core.exceptions import ConfigurationError, StorageError

logger = structlog.get_logger(__name__)


def document_key(fax_id: int, index: int) -> str:
    timestamp_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"fax/{fax_id}/document_{index}_{timestamp_ms}.pdf"


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Store the object and return its public URL."""
        ...

    async def head(self, key: str) -> Optional[dict]:
        ...

    async def delete(self, key: str) -> bool:
        ...


def _public_url(base: str, key: str) -> str:
    if not base:
        raise ConfigurationError("STORAGE_PUBLIC_URL is not configured")
    return f"{base.rstrip('/')}/{key.lstrip('/')}"


class LocalObjectStorage:
    """Files under a local directory."""

    def __init__(self, root: str, public_url: str):
        self.root = Path(root)
        self.public_url = public_url

    def _path(self, key: str) -> Path:
        path = (self.root / key.lstrip("/")).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError("Object key escapes the storage root", {"key": key})
        return path

    async def put(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        url = _public_url(self.public_url, key)
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Local storage write failed", key=key, error=str(e))
            raise StorageError("Failed to store document", {"key": key}) from e

        logger.info("Document stored", key=key, size=len(data))
        return url

    async def head(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.is_file():
            return None
        return {"key": key, "size": path.stat().st_size}

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("Failed to delete document", {"key": key}) from e
        return True


class HttpObjectStorage:
    """Bucket-style HTTP object store (bearer token auth)."""

    def __init__(
        self,
        endpoint_url: str,
        public_url: str,
        api_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint_url = endpoint_url.rstrip("/")
        self.public_url = public_url
        self.headers = {"Authorization": f"Bearer {api_token}"}
        self.timeout = timeout
        self.transport = transport

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        url = f"{self.endpoint_url}/{key.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method, url, headers={**self.headers, **kwargs.pop("headers", {})}, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Object storage request failed", method=method, key=key, error=str(e))
            raise StorageError(f"Object storage {method} failed", {"key": key}) from e

    async def put(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        url = _public_url(self.public_url, key)
        response = await self._request("PUT", key, content=data, headers={"Content-Type": content_type})
        if response.is_error:
            raise StorageError(
                "Object storage rejected the upload",
                {"key": key, "status": response.status_code},
            )
        logger.info("Document stored", key=key, size=len(data))
        return url

    async def head(self, key: str) -> Optional[dict]:
        response = await self._request("HEAD", key)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise StorageError("Object storage HEAD failed", {"key": key, "status": response.status_code})
        return {
            "key": key,
            "size": int(response.headers.get("Content-Length", 0)),
            "content_type": response.headers.get("Content-Type"),
        }

    async def delete(self, key: str) -> bool:
        response = await self._request("DELETE", key)
        if response.status_code == 404:
            return False
        if response.is_error:
            raise StorageError("Object storage DELETE failed", {"key": key, "status": response.status_code})
        return True


def build_storage(settings: Settings) -> Optional[ObjectStorage]:
    """Storage configured for this process, or None when staged sends are impossible."""
    if settings.STORAGE_BACKEND == "local":
        if not settings.STORAGE_PUBLIC_URL:
            return None
        return LocalObjectStorage(settings.STORAGE_LOCAL_DIR, settings.STORAGE_PUBLIC_URL)

    if settings.STORAGE_BACKEND == "http":
        if not (settings.STORAGE_ENDPOINT_URL and settings.STORAGE_PUBLIC_URL):
            return None
        return HttpObjectStorage(
            settings.STORAGE_ENDPOINT_URL,
            settings.STORAGE_PUBLIC_URL,
            settings.STORAGE_API_TOKEN,
        )

    raise ConfigurationError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
