"""Error taxonomy for request execution.

Every error raised by the pipeline derives from ``HttpChainError`` so callers
can tell causes apart with ``isinstance`` instead of matching messages.
"""

from __future__ import annotations

from typing import Dict, Optional

import requests


class HttpChainError(Exception):
    """Base class for all httpchain errors."""

    pass


class InvalidRequestError(HttpChainError):
    """Request could not be built (malformed URL, schema or header)."""

    pass


class TransportError(HttpChainError):
    """Transient network failure observed while sending a request.

    Subclasses are eligible for retry.
    """

    pass


class ConnectError(TransportError):
    """Connection could not be established or was reset."""

    pass


class NameResolutionFailedError(ConnectError):
    """Hostname could not be resolved by the system resolver."""

    pass


class NetworkTimeoutError(TransportError):
    """Connect or read timed out at the socket level."""

    pass


class TLSError(HttpChainError):
    """TLS handshake or certificate verification failed."""

    pass


class RequestFailedError(HttpChainError):
    """Non-transient transport failure (redirect loops, bad chunking, ...)."""

    pass


class ContextError(HttpChainError):
    """The caller's request context ended before the request completed."""

    pass


class RequestTimeoutError(ContextError):
    """Request deadline exceeded."""

    def __init__(self, message: str = "request timeout"):
        super().__init__(message)


class RequestCancelledError(ContextError):
    """Request was cancelled by the caller."""

    def __init__(self, message: str = "request cancelled"):
        super().__init__(message)


class MaxRetriesExceededError(HttpChainError):
    """Retry budget exhausted while the outcome was still retryable.

    Attributes:
        attempts: Number of attempts performed
        response: Last response if the final attempt produced one
        last_error: Last transport error if the final attempt failed
    """

    def __init__(
        self,
        attempts: int,
        response: Optional[requests.Response] = None,
        last_error: Optional[BaseException] = None,
    ):
        self.attempts = attempts
        self.response = response
        self.last_error = last_error
        if last_error is not None:
            detail = f"last error: {last_error}"
        elif response is not None:
            detail = f"last status: {response.status_code}"
        else:
            detail = "no outcome recorded"
        super().__init__(f"max retries exceeded after {attempts} attempts ({detail})")


class BodyNotReusableError(HttpChainError):
    """A retry was needed but the request body cannot be produced again.

    Attributes:
        attempts: Number of attempts performed before aborting
        response: Response of the last attempt, if any
    """

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        response: Optional[requests.Response] = None,
    ):
        self.attempts = attempts
        self.response = response
        super().__init__(message)


class HTTPStatusError(HttpChainError):
    """Response status >= 400 surfaced by the decoding helpers.

    Attributes:
        status_code: HTTP status code
        reason: HTTP reason phrase (e.g. "Not Found")
        headers: Copy of the response headers
        body: Leading bytes of the response body
    """

    MAX_PREVIEW_CHARS = 200

    def __init__(self, status_code: int, reason: str, headers: Dict[str, str], body: bytes):
        self.status_code = status_code
        self.reason = reason
        self.headers = headers
        self.body = body
        super().__init__(self._format())

    def _format(self) -> str:
        preview = self.body.decode("utf-8", errors="replace")
        if len(preview) > self.MAX_PREVIEW_CHARS:
            preview = preview[: self.MAX_PREVIEW_CHARS] + "..."
        preview = preview.strip()
        return f"unexpected status {self.status_code} ({self.reason}); body preview: {preview!r}"


class DecodeResponseError(HttpChainError):
    """Response body could not be decoded."""

    pass


class ResolutionError(HttpChainError):
    """Custom DNS resolution failed; the dialer falls back to system DNS."""

    pass


class EmptyResolutionError(HttpChainError):
    """Custom DNS reported success but returned no addresses."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"custom DNS resolved host {host} but no IP addresses were found")
