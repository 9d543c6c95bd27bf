"""Connection dialer with custom DNS override and system fallback.

Custom DNS is only ever an override: when it cannot produce an answer the
dialer behaves exactly like an unconfigured one.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from urllib3.util import connection
from urllib3.util.timeout import _DEFAULT_TIMEOUT

from httpchain.domain.errors import EmptyResolutionError, ResolutionError
from httpchain.infrastructure.dns.resolver import Resolver

logger = logging.getLogger(__name__)

SocketOptions = Optional[Sequence[Tuple[int, int, Any]]]


def split_host_port(address: str) -> Tuple[str, int]:
    """Split ``host:port`` / ``[v6]:port`` into (host, port)

    Raises:
        ValueError: If the address has no valid port
    """
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"missing port in address {address}")
        port_text = rest[1:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {address}")
        if ":" in host:
            raise ValueError(f"too many colons in address {address}")
    if not port_text.isdigit() or int(port_text) > 65535:
        raise ValueError(f"invalid port in address {address}")
    return host, int(port_text)


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass
class DialOutcome:
    """Candidates tried for one dial and the error each one produced"""

    host: str
    candidates: List[str] = field(default_factory=list)
    errors: List[Tuple[str, OSError]] = field(default_factory=list)
    connected_to: Optional[str] = None
    fallback: bool = False

    @property
    def first_error(self) -> Optional[OSError]:
        return self.errors[0][1] if self.errors else None


class ResilientDialer:
    """Opens TCP connections, resolving hosts through custom DNS when configured"""

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        observer: Optional[Callable[[DialOutcome], None]] = None,
    ):
        """Initialize dialer

        Args:
            resolver: Custom resolver (None = always use system resolution)
            observer: Called with the outcome of every custom-DNS dial
        """
        self.resolver = resolver
        self._observer = observer

    def _system_dial(
        self,
        address: str,
        timeout: Any,
        source_address: Optional[Tuple[str, int]],
        socket_options: SocketOptions,
    ) -> socket.socket:
        try:
            host, port = split_host_port(address)
        except ValueError as e:
            raise OSError(f"dial tcp {address}: {e}") from e
        return connection.create_connection(
            (host, port), timeout, source_address=source_address, socket_options=socket_options
        )

    def dial(
        self,
        address: str,
        timeout: Any = _DEFAULT_TIMEOUT,
        source_address: Optional[Tuple[str, int]] = None,
        socket_options: SocketOptions = None,
    ) -> socket.socket:
        """Open a TCP connection to ``host:port``

        A numeric ``timeout`` is one budget for the whole dial: DNS queries
        and every candidate connect only get the time that is left of it.

        Args:
            address: Target address in ``host:port`` form
            timeout: Overall dial timeout in seconds (or urllib3's default/None)
            source_address: Optional local (host, port) to bind
            socket_options: Socket options applied before connecting

        Returns:
            Connected socket

        Raises:
            OSError: If the connection fails (first candidate error when custom DNS was used)
            socket.timeout: If the budget ran out
            EmptyResolutionError: If custom DNS answered with no addresses
        """
        try:
            host, port = split_host_port(address)
        except ValueError:
            return self._system_dial(address, timeout, source_address, socket_options)

        if self.resolver is None:
            return self._system_dial(address, timeout, source_address, socket_options)

        budget = _Budget(timeout)
        outcome = DialOutcome(host=host)
        try:
            return self._dial_candidates(outcome, address, port, budget, source_address, socket_options)
        finally:
            if self._observer is not None:
                self._observer(outcome)

    def _dial_candidates(
        self,
        outcome: DialOutcome,
        address: str,
        port: int,
        budget: _Budget,
        source_address: Optional[Tuple[str, int]],
        socket_options: SocketOptions,
    ) -> socket.socket:
        host = outcome.host
        try:
            outcome.candidates = self.resolver.resolve(host, timeout=budget.seconds_left())
        except ResolutionError as e:
            logger.debug(f"Custom DNS failed for {host}, falling back to system resolution: {e}")
            outcome.fallback = True
            return self._system_dial(address, budget.left(address), source_address, socket_options)

        if not outcome.candidates:
            raise EmptyResolutionError(host)

        for ip in outcome.candidates:
            target = join_host_port(ip, port)
            try:
                sock = connection.create_connection(
                    (ip, port), budget.left(target), source_address=source_address, socket_options=socket_options
                )
            except OSError as e:
                logger.debug(f"Dial {target} for {host} failed: {e}")
                outcome.errors.append((ip, e))
                if budget.expired():
                    break
                continue
            outcome.connected_to = ip
            return sock

        raise outcome.first_error


class _Budget:
    """Time left of one dial's overall timeout"""

    def __init__(self, timeout: Any):
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout if isinstance(timeout, (int, float)) else None

    def seconds_left(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def left(self, address: str) -> Any:
        """Timeout for the next connect (the original timeout without a deadline)

        Raises:
            socket.timeout: If nothing is left
        """
        if self.deadline is None:
            return self.timeout
        left = self.deadline - time.monotonic()
        if left <= 0:
            raise socket.timeout(f"dial tcp {address}: i/o timeout")
        return left
