"""Request dump logging layer"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

import requests

from httpchain.domain.models.context import RequestContext
from httpchain.domain.models.request import Request
from httpchain.infrastructure.transport.base import Handler, Middleware

logger = logging.getLogger(__name__)
dump_logger = logging.getLogger("httpchain.dump")

DumpLogFunc = Callable[[RequestContext, str], None]


def default_dump_log(level: int = logging.INFO) -> DumpLogFunc:
    """Create a dump function writing to the ``httpchain.dump`` logger"""

    def _dump(context: RequestContext, text: str) -> None:
        dump_logger.log(level, text)

    return _dump


def format_headers(headers: Dict[str, str]) -> str:
    return "".join(f"  {key}: {value}\n" for key, value in headers.items())


def format_request_dump(request: Request, transport_details: str) -> str:
    """Render the multi-line request dump"""
    return (
        "\n[HTTP Request Log]\n"
        "-------------------------------\n"
        f"Time       : {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"Method     : {request.method}\n"
        f"URL        : {request.url}\n"
        f"Host       : {urlsplit(request.url).netloc}\n"
        f"Transport  :\n{transport_details}\n"
        f"Headers    :\n{format_headers(request.headers)}"
        "-------------------------------\n"
    )


class LoggingHandler(Middleware):
    """Dumps every request before delegating to the next handler"""

    def __init__(
        self,
        dump_log: DumpLogFunc,
        transport: Optional[Handler] = None,
        next_handler: Optional[Handler] = None,
    ):
        """Initialize logging handler

        Args:
            dump_log: Sink receiving the request context and the dump text
            transport: Base transport described in each dump
            next_handler: Handler to delegate to
        """
        super().__init__(next_handler)
        self._dump_log = dump_log
        self._transport = transport

    def _transport_details(self) -> str:
        describe = getattr(self._transport, "describe", None)
        if callable(describe):
            return describe()
        if self._transport is not None:
            return f"  Type                 : {type(self._transport).__name__}"
        return "  Type                 : None"

    def send(self, request: Request) -> requests.Response:
        self._dump_log(request.context, format_request_dump(request, self._transport_details()))
        started = time.monotonic()
        response = self.next.send(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug(f"{request.method} {request.url} -> {response.status_code} in {elapsed_ms:.1f}ms")
        return response
