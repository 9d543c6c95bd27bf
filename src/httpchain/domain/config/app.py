"""Main client configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from httpchain.domain.config.dns import DNSConfig
from httpchain.domain.config.logging_config import LoggingConfig
from httpchain.domain.config.retry import RetryPolicy
from httpchain.domain.config.transport import TransportSettings

DEFAULT_USER_AGENT = "httpchain/0.1"


class ClientConfig(BaseModel):
    """Main client configuration.

    This is the root configuration model that aggregates all configuration sections.
    Validation is performed at load time to fail fast on configuration errors.

    Attributes:
        user_agent: Default User-Agent header
        timeout: Default per-request deadline in seconds (None = no deadline)
        retry: Retry policy
        dns: Custom DNS resolution
        transport: Base transport settings
        logging: Request dump logging
    """

    user_agent: str = DEFAULT_USER_AGENT
    timeout: Optional[float] = Field(None, gt=0.0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    dns: DNSConfig = Field(default_factory=DNSConfig)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on attribute assignment
        extra="forbid",  # Reject unknown fields
        json_schema_extra={
            "example": {
                "user_agent": "my-service/1.0",
                "timeout": 30.0,
                "retry": {
                    "max_attempts": 3,
                    "base_delay": 0.2,
                    "max_delay": 5.0,
                    "retry_statuses": [429, 502, 503, 504],
                    "jitter": True,
                },
                "dns": {
                    "servers": ["1.1.1.1:53", "8.8.8.8:53"],
                    "timeout": 2.0,
                },
                "transport": {
                    "dial_timeout": 5.0,
                    "pool_maxsize": 32,
                },
                "logging": {
                    "dump_requests": False,
                },
            }
        },
    )
