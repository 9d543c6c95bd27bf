"""Custom DNS configuration model."""

import ipaddress
from typing import List, Tuple

from pydantic import BaseModel, Field, field_validator

DEFAULT_DNS_PORT = 53


def parse_server_address(server: str) -> Tuple[str, int]:
    """Split a DNS server address into (ip, port)

    Accepts ``ip:port``, ``[ipv6]:port`` and a bare IP (port 53).

    Raises:
        ValueError: If the host is not an IP literal or the port is invalid
    """
    server = server.strip()
    if server.startswith("["):
        host, sep, rest = server[1:].partition("]")
        if not sep:
            raise ValueError(f"missing ']' in DNS server address: {server}")
        port_text = rest[1:] if rest.startswith(":") else ""
        if rest and not rest.startswith(":"):
            raise ValueError(f"invalid DNS server address: {server}")
    elif server.count(":") == 1:
        host, _, port_text = server.partition(":")
    else:
        host, port_text = server, ""

    try:
        ipaddress.ip_address(host)
    except ValueError:
        raise ValueError(f"DNS server must be an IP address: {server}") from None

    port = DEFAULT_DNS_PORT
    if port_text:
        if not port_text.isdigit() or not (0 < int(port_text) < 65536):
            raise ValueError(f"invalid port in DNS server address: {server}")
        port = int(port_text)
    return host, port


class DNSConfig(BaseModel):
    """Configuration for custom DNS resolution.

    Attributes:
        servers: Ordered DNS server addresses (empty = system resolution only)
        timeout: Per-query timeout in seconds
    """

    servers: List[str] = Field(default_factory=list)
    timeout: float = Field(5.0, gt=0.0, le=60.0)

    @field_validator("servers")
    @classmethod
    def _validate_servers(cls, value: List[str]) -> List[str]:
        for server in value:
            parse_server_address(server)
        return value

    @property
    def enabled(self) -> bool:
        return len(self.servers) > 0

    def addresses(self) -> List[Tuple[str, int]]:
        """Servers as (ip, port) pairs, in declared order"""
        return [parse_server_address(server) for server in self.servers]
