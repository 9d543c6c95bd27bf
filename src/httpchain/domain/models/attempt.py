"""Attempt model - one iteration of the retry loop"""

from dataclasses import dataclass
from typing import Optional

import requests

from httpchain.domain.models.request import Request


@dataclass
class Attempt:
    """Outcome of a single send within a retry loop"""

    index: int  # 0-based attempt index
    request: Request
    response: Optional[requests.Response] = None
    error: Optional[BaseException] = None
    retryable: bool = False
    delay: float = 0.0  # Wait before the next attempt, in seconds

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None

    def describe(self) -> str:
        """Short human-readable outcome"""
        if self.error is not None:
            return f"{type(self.error).__name__}: {self.error}"
        if self.response is not None:
            return f"status {self.response.status_code}"
        return "no outcome"
