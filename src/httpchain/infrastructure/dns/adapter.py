"""requests adapter whose urllib3 connections follow the request context.

Every pooled connection registers a cancel callback with the context of the
request it is serving, so ``RequestContext.cancel()`` shuts its socket down
and unblocks a pending connect/read. When a ResilientDialer is given, socket
creation goes through it; TLS wrapping, SNI and certificate checks still use
the original hostname.
"""

import logging
import socket
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Type

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ConnectTimeoutError, NameResolutionError, NewConnectionError
from urllib3.poolmanager import PoolManager

from httpchain.domain.models.context import RequestContext
from httpchain.infrastructure.dns.dialer import ResilientDialer, join_host_port

logger = logging.getLogger(__name__)

_active = threading.local()


@contextmanager
def active_context(context: RequestContext) -> Iterator[RequestContext]:
    """Make ``context`` visible to connections used by the current thread"""
    previous = getattr(_active, "context", None)
    _active.context = context
    try:
        yield context
    finally:
        _active.context = previous


def current_context() -> Optional[RequestContext]:
    return getattr(_active, "context", None)


class ContextConnectionMixin:
    """Ties a urllib3 connection to the request context it currently serves"""

    dialer: Optional[ResilientDialer] = None
    _unwatch: Optional[Callable[[], None]] = None

    def _watch_context(self) -> Optional[RequestContext]:
        self.release_context()
        context = current_context()
        if context is not None:
            self._unwatch = context.add_cancel_callback(self._abort)
        return context

    def release_context(self) -> None:
        """Stop reacting to the previous request's context"""
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None

    def _abort(self) -> None:
        sock = getattr(self, "sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Shutting down socket to {self.host} failed: {e}")

    def connect(self) -> None:
        context = self._watch_context()
        super().connect()
        if context is not None and context.cancelled():
            self._abort()

    def request(self, *args: Any, **kwargs: Any) -> None:
        self._watch_context()
        return super().request(*args, **kwargs)

    def close(self) -> None:
        self.release_context()
        super().close()

    def _new_conn(self) -> socket.socket:
        if self.dialer is None:
            return super()._new_conn()
        try:
            return self.dialer.dial(
                join_host_port(self._dns_host, self.port),
                self.timeout,
                source_address=self.source_address,
                socket_options=self.socket_options,
            )
        except socket.gaierror as e:
            raise NameResolutionError(self.host, self, e) from e
        except socket.timeout as e:
            raise ConnectTimeoutError(
                self, f"Connection to {self.host} timed out. (connect timeout={self.timeout})"
            ) from e
        except OSError as e:
            raise NewConnectionError(self, f"Failed to establish a new connection: {e}") from e


class ContextPoolMixin:
    """Detaches connections from their request context when they return to the pool"""

    def _put_conn(self, conn: Any) -> None:
        if isinstance(conn, ContextConnectionMixin):
            conn.release_context()
        super()._put_conn(conn)


def build_pool_classes(dialer: Optional[ResilientDialer] = None) -> Dict[str, Type[HTTPConnectionPool]]:
    """Create per-adapter connection pool classes for http and https"""
    attrs = {"dialer": dialer}
    http_conn = type("ContextHTTPConnection", (ContextConnectionMixin, HTTPConnection), attrs)
    https_conn = type("ContextHTTPSConnection", (ContextConnectionMixin, HTTPSConnection), attrs)
    return {
        "http": type("ContextHTTPConnectionPool", (ContextPoolMixin, HTTPConnectionPool), {"ConnectionCls": http_conn}),
        "https": type(
            "ContextHTTPSConnectionPool", (ContextPoolMixin, HTTPSConnectionPool), {"ConnectionCls": https_conn}
        ),
    }


class ResilientHTTPAdapter(HTTPAdapter):
    """HTTPAdapter with cancellable connections, dialing through a ResilientDialer when one is given"""

    def __init__(self, dialer: Optional[ResilientDialer] = None, **kwargs: Any):
        self.dialer = dialer
        self._pool_classes = build_pool_classes(dialer)
        super().__init__(**kwargs)

    def _install(self, manager: PoolManager) -> PoolManager:
        manager.pool_classes_by_scheme = dict(self._pool_classes)
        return manager

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)
        self._install(self.poolmanager)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        if not proxy.lower().startswith("socks"):
            self._install(manager)
        return manager
