"""
Network transport used by the fetcher.

The fetcher only depends on the ``Transport`` protocol; ``HttpxTransport``
is the default implementation. Any host or proxy rewriting belongs to the
transport's caller, not to this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from pixelcache.exceptions import TransportError

logger = logging.getLogger(__name__)

# Request headers sent with every image fetch
_REQUEST_HEADERS = {
    "Accept": "image/*",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class TransportResponse:
    """What the fetcher needs to know about one HTTP response."""

    url: str
    status_code: int
    content_type: str
    body: bytes

    @property
    def ok(self) -> bool:
        """Whether the status code is 2xx."""
        return 200 <= self.status_code < 300


@runtime_checkable
class Transport(Protocol):
    """One GET round trip for an image URL."""

    async def fetch(self, url: str) -> TransportResponse:
        """Fetch *url*.

        Raises
        ------
        TransportError
            When no response could be obtained at all.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class HttpxTransport:
    """``Transport`` built on ``httpx.AsyncClient``.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient | None
        Pre-configured client. When given, the caller owns it and
        ``aclose()`` leaves it open.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self._timeout,
            )
        return self._client

    async def fetch(self, url: str) -> TransportResponse:
        """Issue a GET for *url*, following redirects."""
        client = self._get_client()
        try:
            response = await client.get(
                url, headers=_REQUEST_HEADERS, follow_redirects=True
            )
        except httpx.TimeoutException as exc:
            logger.warning("Timeout fetching image: %s", url)
            raise TransportError(
                f"Timeout fetching {url}", url=url, original_error=exc
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching image %s: %s", url, exc)
            raise TransportError(
                f"HTTP error fetching {url}: {exc}", url=url, original_error=exc
            ) from exc

        return TransportResponse(
            url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            body=response.content,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
