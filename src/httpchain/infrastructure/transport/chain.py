"""Composition of the request execution pipeline"""

import copy
import logging
from typing import List, Optional, Sequence, Union

import requests

from httpchain.domain.config.retry import RetryPolicy
from httpchain.domain.models.request import Request
from httpchain.infrastructure.retry import RetryExecutor
from httpchain.infrastructure.transport.base import FunctionMiddleware, Handler, Middleware, MiddlewareFunc
from httpchain.infrastructure.transport.logging_handler import DumpLogFunc, LoggingHandler

logger = logging.getLogger(__name__)

MiddlewareLike = Union[Middleware, MiddlewareFunc]


def as_middleware(middleware: MiddlewareLike) -> Middleware:
    """Wrap a ``fn(request, next_handler)`` callable into a Middleware"""
    if isinstance(middleware, Middleware):
        return middleware
    if callable(middleware):
        return FunctionMiddleware(middleware)
    raise TypeError(f"middleware must be a Middleware or callable, got {type(middleware).__name__}")


class TransportChain(Handler):
    """Ordered handler chain built once from construction-time configuration.

    Layers, outermost first:
        1. RetryExecutor (only if ``retry_policy.max_attempts > 0``)
        2. LoggingHandler (only if ``dump_log`` is set)
        3. Middlewares, the first registered being the innermost
        4. Base transport

    Each layer is a per-chain copy bound to its inner handler, so a middleware
    instance can be shared between chains.
    """

    def __init__(
        self,
        transport: Handler,
        middlewares: Sequence[MiddlewareLike] = (),
        dump_log: Optional[DumpLogFunc] = None,
        retry_policy: Optional[RetryPolicy] = None,
        retry_executor: Optional[RetryExecutor] = None,
    ):
        """Build the chain

        Args:
            transport: Base transport (innermost handler)
            middlewares: User middlewares in registration order
            dump_log: Request dump sink (None = no logging layer)
            retry_policy: Retry policy (None or max_attempts == 0 = no retry layer)
            retry_executor: Preconfigured retry layer; takes precedence over retry_policy
        """
        self.transport = transport
        self.middlewares: List[Middleware] = [as_middleware(m) for m in middlewares]
        self.layers: List[Handler] = []

        handler = transport
        for middleware in self.middlewares:
            handler = copy.copy(middleware).bind(handler)
            self.layers.append(handler)

        if dump_log is not None:
            handler = LoggingHandler(dump_log, transport=transport, next_handler=handler)
            self.layers.append(handler)

        if retry_executor is None and retry_policy is not None and retry_policy.max_attempts > 0:
            retry_executor = RetryExecutor(retry_policy)
        if retry_executor is not None:
            handler = copy.copy(retry_executor).bind(handler)
            self.layers.append(handler)

        self._entry = handler
        logger.debug(f"Transport chain built: {' -> '.join(self.describe_layers())}")

    def describe_layers(self) -> List[str]:
        """Layer names from outermost to innermost"""
        names = [type(layer).__name__ for layer in reversed(self.layers)]
        names.append(type(self.transport).__name__)
        return names

    def send(self, request: Request) -> requests.Response:
        return self._entry.send(request)

    def close(self) -> None:
        self.transport.close()

