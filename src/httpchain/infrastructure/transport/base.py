"""Handler interface shared by every layer of the transport chain"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import requests

from httpchain.domain.models.request import Request


class Handler(ABC):
    """Abstract base class for anything that can execute a request"""

    @abstractmethod
    def send(self, request: Request) -> requests.Response:
        """Execute request and return the response

        Args:
            request: Fully-formed outbound request

        Returns:
            Response (any status code)

        Raises:
            HttpChainError: If the request could not be executed
        """
        pass

    def close(self) -> None:
        """Release resources held by the handler"""
        pass


class Middleware(Handler):
    """Handler that wraps the next handler in the chain.

    Subclasses override ``send`` and call ``self.next.send(request)`` to
    delegate, running their own logic before and/or after.
    """

    def __init__(self, next_handler: Optional[Handler] = None):
        self._next = next_handler

    @property
    def next(self) -> Handler:
        if self._next is None:
            raise RuntimeError(f"{type(self).__name__} is not bound to a next handler")
        return self._next

    def bind(self, next_handler: Handler) -> "Middleware":
        """Attach the handler this middleware delegates to"""
        self._next = next_handler
        return self

    def send(self, request: Request) -> requests.Response:
        return self.next.send(request)

    def close(self) -> None:
        if self._next is not None:
            self._next.close()


MiddlewareFunc = Callable[[Request, Handler], requests.Response]


class FunctionMiddleware(Middleware):
    """Adapter that turns ``fn(request, next_handler)`` into a middleware"""

    def __init__(self, fn: MiddlewareFunc, next_handler: Optional[Handler] = None):
        super().__init__(next_handler)
        self._fn = fn

    def send(self, request: Request) -> requests.Response:
        return self._fn(request, self.next)

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", repr(self._fn))
        return f"FunctionMiddleware({name})"
