"""
Single logical image load: network attempts, validation, backoff, fallback.

``Fetcher.load`` never raises. Transport and empty-body failures are
retried with exponential backoff; a body that cannot be decoded resolves to
the fallback at once; exhausting every attempt marks the URL as failed.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pixelcache.exceptions import (
    DecodeError,
    EmptyPayloadError,
    StoreWriteError,
    TransportError,
)
from pixelcache.services.failure_tracker import FailureTracker
from pixelcache.services.persistent_store import PersistentStore
from pixelcache.services.transport import Transport, TransportResponse

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
DecoderFn = Callable[[TransportResponse], str]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and exponential backoff schedule.

    Attributes
    ----------
    max_retries : int
        Total number of network attempts per load (not extra retries).
    base_delay_ms : int
        Wait after the first failed attempt; doubles after each further one.
    """

    max_retries: int = 3
    base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after zero-based *attempt* fails."""
        return self.base_delay_ms * (2**attempt) / 1000.0

    def schedule(self) -> list[float]:
        """Every wait a permanently failing URL goes through, in seconds."""
        return [self.delay_for(i) for i in range(self.max_retries - 1)]


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------


def detect_image_type(body: bytes) -> str | None:
    """Detect an image MIME type from magic bytes.

    Returns ``None`` when the bytes do not look like a known image format.
    """
    if body[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if body[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if body[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if body[:4] == b"RIFF" and body[8:12] == b"WEBP":
        return "image/webp"
    if body[:2] == b"BM":
        return "image/bmp"
    head = body[:256].lstrip()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    return None


def encode_data_url(response: TransportResponse) -> str:
    """Encode a response body as a ``data:`` URL.

    The declared ``image/*`` content type wins; otherwise the type is
    sniffed from the body.

    Raises
    ------
    DecodeError
        If the body is not recognisable as an image.
    """
    declared = response.content_type.split(";", 1)[0].strip().lower()
    mime = declared if declared.startswith("image/") else detect_image_type(response.body)
    if mime is None:
        raise DecodeError(
            f"Response from {response.url} is not an image "
            f"(content-type {response.content_type or 'missing'!r})",
            url=response.url,
            content_type=response.content_type,
        )
    encoded = base64.b64encode(response.body).decode("ascii")
    return f"data:{mime};base64,{encoded}"


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class Fetcher:
    """Loads one URL into the store, retrying transient failures.

    Parameters
    ----------
    transport : Transport
        Network capability used for each attempt.
    store : PersistentStore
        Destination for successfully decoded payloads.
    failures : FailureTracker
        Receives URLs whose attempts are exhausted.
    fallback : str
        Reference returned whenever no image can be produced.
    policy : RetryPolicy | None
        Attempt budget and backoff schedule.
    sleep : SleepFn
        Coroutine used to wait between attempts.
    decoder : DecoderFn
        Turns a validated response into the stored payload.
    """

    def __init__(
        self,
        transport: Transport,
        store: PersistentStore,
        failures: FailureTracker,
        fallback: str,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        decoder: DecoderFn = encode_data_url,
    ) -> None:
        self._transport = transport
        self._store = store
        self._failures = failures
        self._fallback = fallback
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._decoder = decoder

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def fallback(self) -> str:
        return self._fallback

    @staticmethod
    def _validate(url: str, response: TransportResponse) -> None:
        if not response.ok:
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        if not response.body:
            raise EmptyPayloadError(f"Empty image body from {url}", url=url)

    async def _attempt(self, url: str) -> TransportResponse:
        try:
            response = await self._transport.fetch(url)
        except TransportError:
            raise
        except Exception as exc:
            # Any other transport exception counts as a failed attempt
            raise TransportError(
                f"Transport failure for {url}: {exc}", url=url, original_error=exc
            ) from exc
        self._validate(url, response)
        return response

    async def load(self, url: str) -> str:
        """Fetch, decode and store *url*; return its payload or the fallback."""
        max_retries = self._policy.max_retries

        for attempt in range(max_retries):
            try:
                response = await self._attempt(url)
            except (TransportError, EmptyPayloadError) as exc:
                logger.warning(
                    "Attempt %d/%d failed for %s: %s",
                    attempt + 1,
                    max_retries,
                    url,
                    exc.message,
                )
                if attempt + 1 == max_retries:
                    logger.error(
                        "All %d attempts failed for %s; using fallback image",
                        max_retries,
                        url,
                    )
                    self._failures.mark_failed(url)
                    return self._fallback
                delay = self._policy.delay_for(attempt)
                logger.debug("Backing off %.3fs before retrying %s", delay, url)
                await self._sleep(delay)
                continue

            try:
                payload = self._decoder(response)
            except DecodeError as exc:
                logger.error("Failed to decode image %s: %s", url, exc.message)
                return self._fallback

            try:
                await self._store.put(url, payload)
            except StoreWriteError as exc:
                logger.error(
                    "Fetched %s but could not cache it: %s", url, exc.message
                )
            else:
                logger.info("Cached image: %s (%d bytes)", url, len(response.body))
            return payload

        # max_retries >= 1, so the loop always returns
        return self._fallback
