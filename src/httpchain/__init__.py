"""httpchain - HTTP client with a composable retry/logging/middleware chain and custom DNS"""

from httpchain.application.client import HttpClient
from httpchain.domain.config import (
    ClientConfig,
    DNSConfig,
    LoggingConfig,
    RetryPolicy,
    TransportOptions,
    TransportSettings,
)
from httpchain.domain.errors import (
    BodyNotReusableError,
    HttpChainError,
    HTTPStatusError,
    InvalidRequestError,
    MaxRetriesExceededError,
    RequestCancelledError,
    RequestTimeoutError,
)
from httpchain.domain.models import Attempt, Request, RequestContext
from httpchain.infrastructure.transport.base import FunctionMiddleware, Handler, Middleware

__version__ = "0.1.0"

__all__ = [
    "Attempt",
    "BodyNotReusableError",
    "ClientConfig",
    "DNSConfig",
    "FunctionMiddleware",
    "Handler",
    "HttpChainError",
    "HttpClient",
    "HTTPStatusError",
    "InvalidRequestError",
    "LoggingConfig",
    "MaxRetriesExceededError",
    "Middleware",
    "Request",
    "RequestCancelledError",
    "RequestContext",
    "RequestTimeoutError",
    "RetryPolicy",
    "TransportOptions",
    "TransportSettings",
]
