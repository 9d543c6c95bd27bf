"""Retry policy model."""

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RetryPolicy(BaseModel):
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of retries after the first attempt (0 = no retry)
        base_delay: Initial backoff delay in seconds
        max_delay: Upper bound for any computed backoff delay in seconds
        retry_statuses: Response status codes that trigger a retry
        jitter: Randomly scale backoff delays to desynchronize clients
        retry_on_dns_failure: Treat system "host not found" errors as transient
    """

    max_attempts: int = Field(2, ge=0, le=100)
    base_delay: float = Field(0.1, ge=0.0)  # Allow 0 for tests
    max_delay: float = Field(1.0, ge=0.0)
    retry_statuses: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})
    jitter: bool = False
    retry_on_dns_failure: bool = True

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay must not exceed max_delay")
        return self
