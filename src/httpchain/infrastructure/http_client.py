"""Shared HTTP client utilities (requests base transport + response helpers).

We keep the requests-specific code centralized: the base transport is the
only place where ``requests`` exceptions are classified into the httpchain
error hierarchy, and the helpers below are the only code that reads bodies.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Tuple

import requests
from urllib3.exceptions import NameResolutionError

from httpchain.domain.config.transport import TransportSettings
from httpchain.domain.errors import (
    ConnectError,
    DecodeResponseError,
    HttpChainError,
    HTTPStatusError,
    InvalidRequestError,
    NameResolutionFailedError,
    NetworkTimeoutError,
    RequestFailedError,
    TLSError,
)
from httpchain.domain.models.context import RequestContext
from httpchain.domain.models.request import Request
from httpchain.infrastructure.dns.adapter import ResilientHTTPAdapter, active_context
from httpchain.infrastructure.dns.dialer import ResilientDialer
from httpchain.infrastructure.transport.base import Handler

logger = logging.getLogger(__name__)

RESPONSE_DRAIN_LIMIT = 64 * 1024  # Bytes discarded before closing a response we abandon
ERROR_PREVIEW_LIMIT = 1024  # Bytes of body kept in HTTPStatusError
RESPONSE_BUFFER_LIMIT = 1024 * 1024  # Bytes kept from the last response when retries give up

_INVALID_REQUEST_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidHeader,
    requests.exceptions.URLRequired,
)


def _is_name_resolution_failure(exc: requests.exceptions.ConnectionError) -> bool:
    reason = exc.args[0] if exc.args else None
    reason = getattr(reason, "reason", reason)
    return isinstance(reason, NameResolutionError)


def classify_error(exc: requests.exceptions.RequestException) -> HttpChainError:
    """Map a requests exception onto the httpchain error hierarchy"""
    if isinstance(exc, _INVALID_REQUEST_ERRORS):
        return InvalidRequestError(f"invalid request: {exc}")
    if isinstance(exc, requests.exceptions.SSLError):
        return TLSError(f"TLS error: {exc}")
    if isinstance(exc, requests.exceptions.Timeout):
        return NetworkTimeoutError(f"network timeout: {exc}")
    if isinstance(exc, requests.exceptions.ConnectionError):
        if _is_name_resolution_failure(exc):
            return NameResolutionFailedError(f"name resolution failed: {exc}")
        return ConnectError(f"connection failed: {exc}")
    return RequestFailedError(f"request failed: {exc}")


class BaseTransport(Handler):
    """Innermost handler: sends requests through a pooled ``requests.Session``"""

    def __init__(
        self,
        settings: Optional[TransportSettings] = None,
        dialer: Optional[ResilientDialer] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize base transport

        Args:
            settings: Transport settings (defaults if None)
            dialer: Dialer used to open connections (urllib3 default if None)
            session: Pre-built session (tests); settings are not applied to it
        """
        self.settings = settings or TransportSettings()
        self.dialer = dialer
        self.session = session or self._build_session()

    def _build_session(self) -> requests.Session:
        settings = self.settings
        session = requests.Session()
        session.trust_env = settings.trust_env
        session.verify = settings.verify
        session.max_redirects = settings.max_redirects
        if settings.proxies:
            session.proxies.update(settings.proxies)

        adapter = ResilientHTTPAdapter(
            dialer=self.dialer,
            pool_connections=settings.pool_connections,
            pool_maxsize=settings.pool_maxsize,
            pool_block=settings.pool_block,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _timeout(self, context: RequestContext) -> Tuple[float, Optional[float]]:
        connect = self.settings.dial_timeout
        read = self.settings.read_timeout
        remaining = context.remaining()
        if remaining is not None:
            connect = min(connect, remaining)
            read = remaining if read is None else min(read, remaining)
        return connect, read

    def _prepare(self, request: Request) -> requests.PreparedRequest:
        try:
            return self.session.prepare_request(
                requests.Request(
                    method=request.method,
                    url=request.url,
                    headers=request.headers,
                    params=request.params,
                    data=request.body,
                )
            )
        except requests.exceptions.RequestException as e:
            raise classify_error(e) from e
        except ValueError as e:
            raise InvalidRequestError(f"invalid request: {e}") from e

    def send(self, request: Request) -> requests.Response:
        context = request.context
        context.raise_if_done()
        prepared = self._prepare(request)
        send_kwargs = self.session.merge_environment_settings(
            prepared.url, {}, True, None, None
        )

        try:
            with active_context(context):
                response = self.session.send(
                    prepared,
                    timeout=self._timeout(context),
                    allow_redirects=self.settings.follow_redirects,
                    **send_kwargs,
                )
        except requests.exceptions.RequestException as e:
            context_error = context.error()
            if context_error is not None:
                raise context_error from e
            error = classify_error(e)
            logger.debug(f"{request.method} {request.url}: {type(error).__name__}: {e}")
            raise error from e

        context_error = context.error()
        if context_error is not None:
            response.close()
            raise context_error
        return response

    def describe(self) -> str:
        """Transport details for request dumps"""
        s = self.settings
        return (
            f"  Type                 : {type(self).__name__}\n"
            f"  PoolConnections      : {s.pool_connections}\n"
            f"  PoolMaxSize          : {s.pool_maxsize}\n"
            f"  DialTimeout          : {s.dial_timeout}s\n"
            f"  ReadTimeout          : {s.read_timeout}\n"
            f"  FollowRedirects      : {s.follow_redirects}\n"
            f"  CustomDNS            : {self.dialer is not None and self.dialer.resolver is not None}"
        )

    def close(self) -> None:
        self.session.close()


def drain_and_close(response: requests.Response, limit: int = RESPONSE_DRAIN_LIMIT) -> None:
    """Discard up to ``limit`` unread body bytes, then close the response

    Reading the remainder of a small body lets urllib3 return the connection
    to the pool; larger bodies are cut off and the connection is dropped.
    """
    drained = 0
    try:
        if not getattr(response, "_content_consumed", False):
            for chunk in response.iter_content(chunk_size=8192):
                drained += len(chunk)
                if drained >= limit:
                    break
    except (requests.exceptions.RequestException, OSError) as e:
        logger.debug(f"Error discarding response body: {e}")
    finally:
        response.close()


def buffer_response(response: requests.Response, limit: int = RESPONSE_BUFFER_LIMIT) -> None:
    """Load up to ``limit`` body bytes into memory and release the connection

    The buffered bytes become ``response.content``; a longer body is cut off.
    """
    if getattr(response, "_content_consumed", False):
        response.close()
        return

    body = bytearray()
    try:
        for chunk in response.iter_content(chunk_size=8192):
            body.extend(chunk)
            if len(body) >= limit:
                logger.warning(f"Response body from {response.url} truncated to {limit} bytes")
                break
    except (requests.exceptions.RequestException, OSError) as e:
        logger.warning(f"Error reading response body: {e}")
    finally:
        # requests serves .content from _content once the stream is consumed
        response._content = bytes(body[:limit])
        response._content_consumed = True
        response.close()


def error_from_response(response: requests.Response, limit: int = ERROR_PREVIEW_LIMIT) -> HTTPStatusError:
    """Build an HTTPStatusError with a bounded body preview; closes the response"""
    preview = bytearray()
    try:
        if getattr(response, "_content_consumed", False):
            preview.extend((response.content or b"")[:limit])
        else:
            for chunk in response.iter_content(chunk_size=limit):
                preview.extend(chunk)
                if len(preview) >= limit:
                    break
    except (requests.exceptions.RequestException, OSError) as e:
        logger.warning(f"Error reading error response body preview: {e}")
    finally:
        drain_and_close(response)

    return HTTPStatusError(
        status_code=response.status_code,
        reason=response.reason or "",
        headers=dict(response.headers),
        body=bytes(preview[:limit]),
    )


def read_bytes(response: requests.Response) -> bytes:
    """Return the body of a successful response

    Raises:
        HTTPStatusError: If status >= 400
        DecodeResponseError: If the body cannot be read
    """
    if response.status_code >= 400:
        raise error_from_response(response)
    try:
        return response.content
    except (requests.exceptions.RequestException, OSError) as e:
        raise DecodeResponseError(f"failed to read response body: {e}") from e
    finally:
        response.close()


def read_text(response: requests.Response) -> str:
    content = read_bytes(response)
    encoding = response.encoding or requests.utils.get_encoding_from_headers(response.headers) or "utf-8"
    try:
        return content.decode(encoding, errors="replace")
    except LookupError as e:
        raise DecodeResponseError(f"unknown response encoding {encoding}: {e}") from e


def read_json(response: requests.Response) -> Any:
    content = read_bytes(response)
    try:
        return json.loads(content)
    except ValueError as e:
        raise DecodeResponseError(f"failed to decode JSON response: {e}") from e
