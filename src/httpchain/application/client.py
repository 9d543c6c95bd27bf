"""HttpClient - high-level entry point wiring config, DNS, transport and chain"""

from __future__ import annotations

import json as jsonlib
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from httpchain.domain.config.app import ClientConfig
from httpchain.domain.config.retry import RetryPolicy
from httpchain.domain.config.transport import TransportOptions
from httpchain.domain.errors import InvalidRequestError
from httpchain.domain.models.attempt import Attempt
from httpchain.domain.models.context import RequestContext
from httpchain.domain.models.request import Body, BodyFactory, Request
from httpchain.infrastructure.dns.dialer import DialOutcome, ResilientDialer
from httpchain.infrastructure.dns.resolver import Resolver
from httpchain.infrastructure.http_client import BaseTransport, read_bytes, read_json, read_text
from httpchain.infrastructure.retry import RetryExecutor
from httpchain.infrastructure.transport.base import Handler
from httpchain.infrastructure.transport.chain import MiddlewareLike, TransportChain
from httpchain.infrastructure.transport.logging_handler import DumpLogFunc, default_dump_log

logger = logging.getLogger(__name__)


class HttpClient:
    """HTTP client with retry, request dumps, middleware and custom DNS.

    The transport chain is built once and rebuilt only when the retry policy,
    dump log or middleware list changes. Reconfigure between requests, not
    while requests are in flight.

    Example:
        >>> with HttpClient(ClientConfig(timeout=10)) as client:
        ...     data = client.get_json("https://example.com/api/items")
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        middlewares: Optional[List[MiddlewareLike]] = None,
        dump_log: Optional[DumpLogFunc] = None,
        transport: Optional[Handler] = None,
        transport_options: Optional[TransportOptions] = None,
        on_retry: Optional[Callable[[Attempt], None]] = None,
        on_dial: Optional[Callable[[DialOutcome], None]] = None,
    ):
        """Initialize client

        Args:
            config: Client configuration (defaults if None)
            middlewares: User middlewares in registration order (first = innermost)
            dump_log: Request dump sink; defaults to the ``httpchain.dump`` logger
                when ``config.logging.dump_requests`` is set
            transport: Base transport override (tests); DNS and transport
                settings are not applied to it
            transport_options: Overrides applied on top of ``config.transport``
            on_retry: Observer called with each retried attempt
            on_dial: Observer called with the outcome of each custom-DNS dial
        """
        self.config = config or ClientConfig()
        self._middlewares: List[MiddlewareLike] = list(middlewares or [])
        self._retry_policy: RetryPolicy = self.config.retry
        self._timeout: Optional[float] = self.config.timeout
        self._on_retry = on_retry

        if dump_log is None and self.config.logging.dump_requests:
            dump_log = default_dump_log(logging.getLevelName(self.config.logging.level))
        self._dump_log = dump_log

        self.dialer: Optional[ResilientDialer] = None
        if transport is None:
            resolver = Resolver.from_config(self.config.dns)
            if resolver is not None:
                logger.info(f"Using custom DNS servers: {', '.join(self.config.dns.servers)}")
                self.dialer = ResilientDialer(resolver, observer=on_dial)
            transport = BaseTransport(self.config.transport.apply(transport_options), dialer=self.dialer)
        self.transport = transport

        self._chain = self._build_chain()

    def _build_chain(self) -> TransportChain:
        retry_executor = None
        if self._retry_policy.max_attempts > 0:
            retry_executor = RetryExecutor(self._retry_policy, on_retry=self._on_retry)
        return TransportChain(
            self.transport,
            middlewares=self._middlewares,
            dump_log=self._dump_log,
            retry_executor=retry_executor,
        )

    @property
    def chain(self) -> TransportChain:
        return self._chain

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def set_retry_policy(self, policy: RetryPolicy) -> None:
        """Replace the retry policy (max_attempts=0 removes the retry layer)"""
        self._retry_policy = policy
        self._chain = self._build_chain()

    def set_dump_log(self, dump_log: Optional[DumpLogFunc]) -> None:
        """Enable request dumps through ``dump_log`` (None disables them)"""
        self._dump_log = dump_log
        self._chain = self._build_chain()

    def add_middleware(self, middleware: MiddlewareLike) -> None:
        """Register a middleware outside every previously registered one"""
        self._middlewares.append(middleware)
        self._chain = self._build_chain()

    def set_timeout(self, timeout: Optional[float]) -> None:
        """Set the default per-request deadline in seconds (None = no deadline)

        Raises:
            ValueError: If timeout is not positive
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._timeout = timeout

    def _default_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.config.user_agent}

    def build_request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Body] = None,
        json: Any = None,
        body_factory: Optional[BodyFactory] = None,
        timeout: Optional[float] = None,
        context: Optional[RequestContext] = None,
        default_headers: bool = True,
    ) -> Request:
        """Assemble a Request with default headers and a deadline applied

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers (override the defaults)
            params: Query parameters
            data: Raw body (bytes, str or a readable stream)
            json: Object to send as a JSON body (exclusive with data)
            body_factory: Regenerates a streaming body for retries
            timeout: Deadline for this request (defaults to the client timeout)
            context: Explicit context; takes precedence over timeout
            default_headers: Add the default User-Agent header

        Returns:
            Request ready for ``send``

        Raises:
            InvalidRequestError: If both data and json are given
        """
        if data is not None and json is not None:
            raise InvalidRequestError("data and json are mutually exclusive")

        merged: Dict[str, str] = self._default_headers() if default_headers else {}
        for key, value in (headers or {}).items():
            for existing in [k for k in merged if k.lower() == key.lower()]:
                del merged[existing]
            merged[key] = value

        body = data
        if json is not None:
            try:
                body = jsonlib.dumps(json).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise InvalidRequestError(f"failed to encode JSON body: {e}") from e
            if not any(k.lower() == "content-type" for k in merged):
                merged["Content-Type"] = "application/json"

        if context is None:
            context = RequestContext.with_timeout(timeout if timeout is not None else self._timeout)

        return Request(
            method=method,
            url=url,
            headers=merged,
            params=dict(params or {}),
            body=body,
            body_factory=body_factory,
            context=context,
        )

    def send(self, request: Request) -> requests.Response:
        """Send a prepared Request through the transport chain

        The response is returned for any status code; the caller owns it and
        must read or close it.
        """
        return self._chain.send(request)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Build and send a request (see ``build_request`` for arguments)"""
        return self.send(self.build_request(method, url, **kwargs))

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("DELETE", url, **kwargs)

    def head(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("HEAD", url, **kwargs)

    def options(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("OPTIONS", url, **kwargs)

    def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET and decode a JSON body

        Raises:
            HTTPStatusError: If the status is >= 400
            DecodeResponseError: If the body is not valid JSON
        """
        return read_json(self.get(url, **kwargs))

    def get_text(self, url: str, **kwargs: Any) -> str:
        return read_text(self.get(url, **kwargs))

    def get_bytes(self, url: str, **kwargs: Any) -> bytes:
        return read_bytes(self.get(url, **kwargs))

    def post_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        """POST ``payload`` as JSON and decode the JSON response"""
        return read_json(self.post(url, json=payload, **kwargs))

    def put_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        return read_json(self.put(url, json=payload, **kwargs))

    def close(self) -> None:
        """Release pooled connections"""
        self._chain.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
