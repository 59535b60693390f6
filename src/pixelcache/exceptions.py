"""
Custom exceptions for the pixelcache application.

This module defines the loader's error taxonomy. Transport, empty-payload
and decode failures are absorbed by the fetcher and turned into the
fallback reference; only ``StoreInitializationError`` reaches callers of
the public API.
"""

from __future__ import annotations


class PixelCacheError(Exception):
    """Base exception for all pixelcache errors."""

    def __init__(self, message: str) -> None:
        """
        Initialize PixelCacheError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        """
        self.message = message
        super().__init__(message)


class TransportError(PixelCacheError):
    """
    Exception raised when a network attempt does not succeed.

    Covers non-2xx responses as well as connection-level failures such as
    timeouts, DNS errors and refused connections. The fetcher retries
    these with exponential backoff.

    Attributes
    ----------
    message : str
        Human-readable error message.
    url : str | None
        URL that was requested.
    status_code : int | None
        HTTP status code, or ``None`` when no response was received.
    original_error : Exception | None
        The underlying exception, if any.

    Examples
    --------
    >>> try:
    ...     response = await transport.fetch(url)
    ... except TransportError as e:
    ...     print(f"attempt failed ({e.status_code}): {e.message}")
    """

    def __init__(
        self,
        message: str = "Network request failed",
        url: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize TransportError.

        Parameters
        ----------
        message : str, optional
            Human-readable error message (default: "Network request failed").
        url : str | None, optional
            URL that was requested (default: None).
        status_code : int | None, optional
            HTTP status code if a response arrived (default: None).
        original_error : Exception | None, optional
            The underlying exception (default: None).
        """
        self.url = url
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)


class EmptyPayloadError(PixelCacheError):
    """
    Exception raised when a successful response carries no body.

    Retryable, like ``TransportError``.
    """

    def __init__(self, message: str = "Empty image payload", url: str | None = None) -> None:
        """
        Initialize EmptyPayloadError.

        Parameters
        ----------
        message : str, optional
            Human-readable error message (default: "Empty image payload").
        url : str | None, optional
            URL whose response was empty (default: None).
        """
        self.url = url
        super().__init__(message)


class DecodeError(PixelCacheError):
    """
    Exception raised when received bytes cannot be turned into a payload.

    Not retryable: the bytes already arrived, so asking again would return
    the same unreadable body.
    """

    def __init__(
        self,
        message: str = "Image payload could not be decoded",
        url: str | None = None,
        content_type: str | None = None,
    ) -> None:
        """
        Initialize DecodeError.

        Parameters
        ----------
        message : str, optional
            Human-readable error message.
        url : str | None, optional
            URL whose body failed to decode (default: None).
        content_type : str | None, optional
            Content-Type reported by the server (default: None).
        """
        self.url = url
        self.content_type = content_type
        super().__init__(message)


class StoreInitializationError(PixelCacheError):
    """
    Exception raised when the persistent store cannot be opened.

    This is the only error surfaced to callers of ``get_image``: without
    storage the cache's capacity and durability guarantees cannot hold.

    Attributes
    ----------
    message : str
        Human-readable error message.
    database_url : str | None
        URL of the store that failed to open.
    original_error : Exception | None
        The underlying exception, if any.
    """

    def __init__(
        self,
        message: str = "Image store failed to initialize",
        database_url: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize StoreInitializationError.

        Parameters
        ----------
        message : str, optional
            Human-readable error message.
        database_url : str | None, optional
            URL of the store that failed to open (default: None).
        original_error : Exception | None, optional
            The underlying exception (default: None).
        """
        self.database_url = database_url
        self.original_error = original_error
        super().__init__(message)


class StoreWriteError(PixelCacheError):
    """
    Exception raised when persisting a fetched payload fails.

    The fetcher logs it and still hands the in-memory payload to the
    caller, since the fetch itself succeeded.
    """

    def __init__(
        self,
        message: str = "Failed to write image to store",
        key: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize StoreWriteError.

        Parameters
        ----------
        message : str, optional
            Human-readable error message.
        key : str | None, optional
            Store key being written (default: None).
        original_error : Exception | None, optional
            The underlying exception (default: None).
        """
        self.key = key
        self.original_error = original_error
        super().__init__(message)


# Exit codes for CLI commands
EXIT_CODE_SUCCESS = 0
EXIT_CODE_GENERAL_ERROR = 1
EXIT_CODE_INVALID_ARGS = 2
EXIT_CODE_STORE_UNAVAILABLE = 3
EXIT_CODE_INTERRUPTED = 130  # Standard Unix signal interrupt exit code
