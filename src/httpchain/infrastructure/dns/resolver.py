"""Hostname resolution against an ordered list of custom DNS servers"""

import ipaddress
import logging
import time
from typing import List, Optional, Sequence, Tuple

import dns.exception
import dns.message
import dns.query
import dns.rcode
import dns.rdatatype

from httpchain.domain.config.dns import DNSConfig
from httpchain.domain.errors import ResolutionError

logger = logging.getLogger(__name__)

_SKIPPED_RCODES = (dns.rcode.SERVFAIL, dns.rcode.REFUSED, dns.rcode.NOTIMP, dns.rcode.FORMERR)


class Resolver:
    """Resolves hostnames using custom DNS servers.

    Servers are consulted strictly in declared order and only for fallback:
    the first server that answers is authoritative for the lookup, even if
    its answer holds no addresses.
    """

    def __init__(self, servers: Sequence[Tuple[str, int]], timeout: float = 5.0):
        """Initialize resolver

        Args:
            servers: Ordered (ip, port) pairs of DNS servers
            timeout: Per-query timeout in seconds
        """
        self.servers = list(servers)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: DNSConfig) -> Optional["Resolver"]:
        """Create resolver from config (None if no servers are configured)"""
        if not config.enabled:
            return None
        return cls(config.addresses(), timeout=config.timeout)

    def _query(
        self, host: str, rdtype: dns.rdatatype.RdataType, server: Tuple[str, int], timeout: float
    ) -> dns.message.Message:
        query = dns.message.make_query(host, rdtype)
        ip, port = server
        response, _ = dns.query.udp_with_fallback(query, ip, timeout=timeout, port=port)
        return response

    def _query_timeout(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return self.timeout
        return min(self.timeout, deadline - time.monotonic())

    @staticmethod
    def _addresses(response: dns.message.Message, rdtype: dns.rdatatype.RdataType) -> List[str]:
        addresses = []
        for rrset in response.answer:
            if rrset.rdtype != rdtype:
                continue
            for rdata in rrset:
                addresses.append(rdata.address)
        return addresses

    def resolve(self, host: str, timeout: Optional[float] = None) -> List[str]:
        """Resolve host to candidate IP addresses (IPv4 first, then IPv6)

        Args:
            host: Hostname or IP literal
            timeout: Overall time allowed for the lookup; each query gets at
                most the per-query timeout and never more than what is left

        Returns:
            Candidate addresses in the order the server returned them (may be empty)

        Raises:
            ResolutionError: If the name does not exist, no server answered or time ran out
        """
        try:
            ipaddress.ip_address(host)
            return [host]
        except ValueError:
            pass

        deadline = None if timeout is None else time.monotonic() + timeout
        last_error: Optional[Exception] = None
        for server in self.servers:
            query_timeout = self._query_timeout(deadline)
            if query_timeout <= 0:
                raise ResolutionError(f"DNS lookup for {host} timed out (last error: {last_error})")
            try:
                response = self._query(host, dns.rdatatype.A, server, query_timeout)
            except (dns.exception.DNSException, OSError) as e:
                logger.debug(f"DNS server {server[0]}:{server[1]} unreachable for {host}: {e}")
                last_error = e
                continue

            rcode = response.rcode()
            if rcode == dns.rcode.NXDOMAIN:
                raise ResolutionError(f"no such host: {host} (answered by {server[0]}:{server[1]})")
            if rcode in _SKIPPED_RCODES:
                logger.debug(f"DNS server {server[0]}:{server[1]} answered {dns.rcode.to_text(rcode)} for {host}")
                last_error = ResolutionError(f"{dns.rcode.to_text(rcode)} from {server[0]}:{server[1]}")
                continue

            addresses = self._addresses(response, dns.rdatatype.A)
            query_timeout = self._query_timeout(deadline)
            if query_timeout > 0:
                try:
                    aaaa = self._query(host, dns.rdatatype.AAAA, server, query_timeout)
                    addresses.extend(self._addresses(aaaa, dns.rdatatype.AAAA))
                except (dns.exception.DNSException, OSError) as e:
                    logger.debug(f"AAAA lookup for {host} on {server[0]}:{server[1]} failed: {e}")

            logger.debug(f"Resolved {host} via {server[0]}:{server[1]}: {addresses}")
            return addresses

        raise ResolutionError(f"all custom DNS servers failed for {host}: {last_error}")
