"""
Fetch capability and URL helpers.

The catalog only needs "GET a URL, get back a status and a body".  Anything
with an async ``fetch(url)`` returning a ``FetchResponse`` will do; the
default ``HttpxFetcher`` wraps an ``httpx.AsyncClient``.  Retries are left to
whoever supplies the fetcher.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, Type, TypeVar
from urllib.parse import urlsplit

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from .config import DEFAULT_REQUEST_TIMEOUT
from .errors import FetchError, InvalidDocumentError

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status: int
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResponse: ...


class HttpxFetcher:
    """Fetcher backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def fetch(self, url: str) -> FetchResponse:
        client = self.client
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(url, None, str(exc) or type(exc).__name__) from exc
        return FetchResponse(url=url, status=response.status_code, content=response.content)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def fetch_bytes(fetcher: Fetcher, url: str) -> bytes:
    """Fetch ``url`` and return its body, raising FetchError on a non-2xx status."""
    logger.debug(f"GET {url}")
    response = await fetcher.fetch(url)
    if not response.ok:
        raise FetchError(url, response.status)
    return response.content


async def fetch_document(fetcher: Fetcher, url: str, model: Type[M]) -> M:
    """Fetch a JSON document and parse it into ``model``."""
    body = await fetch_bytes(fetcher, url)
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        raise InvalidDocumentError(url, f"{exc.error_count()} validation error(s): {exc.errors()[0]['msg']}") from exc


def dir_of(url: str) -> str:
    """Parent directory of a document URL (no trailing slash)."""
    idx = url.rfind("/")
    return url[:idx] if idx > 0 else url


def is_absolute_url(ref: str) -> bool:
    return urlsplit(ref).scheme in ("http", "https")


def join_url(base: str, path: str) -> str:
    """Resolve a catalog-relative path against ``base``; absolute URLs pass through."""
    if is_absolute_url(path):
        return path
    return f"{base.rstrip('/')}/{path.lstrip('/')}"
