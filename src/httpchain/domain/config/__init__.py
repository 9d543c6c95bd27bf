"""Configuration models with Pydantic validation."""

from httpchain.domain.config.app import ClientConfig
from httpchain.domain.config.dns import DNSConfig
from httpchain.domain.config.logging_config import LoggingConfig
from httpchain.domain.config.retry import RetryPolicy
from httpchain.domain.config.transport import TransportOptions, TransportSettings

__all__ = [
    "ClientConfig",
    "DNSConfig",
    "LoggingConfig",
    "RetryPolicy",
    "TransportOptions",
    "TransportSettings",
]
