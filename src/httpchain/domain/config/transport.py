"""Base transport configuration models."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransportOptions(BaseModel):
    """User-supplied transport overrides.

    Every field is optional; only fields that are set replace the
    corresponding ``TransportSettings`` value.
    """

    pool_connections: Optional[int] = Field(None, gt=0)
    pool_maxsize: Optional[int] = Field(None, gt=0)
    pool_block: Optional[bool] = None
    dial_timeout: Optional[float] = Field(None, gt=0.0)
    read_timeout: Optional[float] = Field(None, gt=0.0)
    follow_redirects: Optional[bool] = None
    max_redirects: Optional[int] = Field(None, ge=0)
    verify: Optional[bool] = None
    trust_env: Optional[bool] = None
    proxies: Optional[Dict[str, str]] = None

    model_config = ConfigDict(extra="forbid")


class TransportSettings(BaseModel):
    """Effective settings of the base transport.

    Attributes:
        pool_connections: Number of per-host connection pools to cache
        pool_maxsize: Maximum idle connections kept per host
        pool_block: Block when a host pool is exhausted instead of opening extra connections
        dial_timeout: TCP connect timeout in seconds
        read_timeout: Socket read timeout in seconds (None = bounded by request deadline only)
        follow_redirects: Follow 3xx responses
        max_redirects: Redirect limit when following
        verify: Verify TLS certificates
        trust_env: Honor proxy/CA environment variables
        proxies: Explicit scheme -> proxy URL mapping
    """

    pool_connections: int = Field(32, gt=0)
    pool_maxsize: int = Field(64, gt=0)
    pool_block: bool = False
    dial_timeout: float = Field(10.0, gt=0.0)
    read_timeout: Optional[float] = Field(None, gt=0.0)
    follow_redirects: bool = True
    max_redirects: int = Field(30, ge=0)
    verify: bool = True
    trust_env: bool = True
    proxies: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def apply(self, options: Optional[TransportOptions]) -> "TransportSettings":
        """Return a copy with every field present in ``options`` applied

        Args:
            options: Overrides (None = no change)

        Returns:
            New settings instance
        """
        if options is None:
            return self.model_copy()
        present = {name: value for name, value in options.model_dump().items() if value is not None}
        return self.model_validate({**self.model_dump(), **present})
