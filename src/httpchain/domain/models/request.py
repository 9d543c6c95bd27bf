"""Request model - a fully-formed outbound HTTP request"""

from dataclasses import dataclass, field
from typing import IO, Any, Callable, Dict, Iterable, Optional, Union

from httpchain.domain.models.context import RequestContext

Body = Union[bytes, str, IO[bytes], Iterable[bytes]]
BodyFactory = Callable[[], Body]


@dataclass
class Request:
    """Outbound request handed to the transport chain.

    ``body_factory`` is the body regenerator: a zero-argument callable that
    produces a fresh body for every retry. In-memory bodies (``bytes``/``str``)
    get one automatically; streaming bodies must supply it to be retryable.
    """

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Body] = None
    body_factory: Optional[BodyFactory] = None
    context: RequestContext = field(default_factory=RequestContext.background)

    def __post_init__(self):
        self.method = self.method.upper()
        if self.body_factory is None and isinstance(self.body, (bytes, str)):
            payload = self.body
            self.body_factory = lambda: payload

    @property
    def has_body(self) -> bool:
        return self.body is not None

    @property
    def body_reusable(self) -> bool:
        """Check if the request can be sent again with an identical body"""
        return not self.has_body or self.body_factory is not None

    def reset_body(self) -> None:
        """Replace the (possibly consumed) body with a fresh one

        Raises:
            ValueError: If the request has a body but no body factory
        """
        if not self.has_body:
            return
        if self.body_factory is None:
            raise ValueError("request body cannot be regenerated")
        self.body = self.body_factory()

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup"""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None
