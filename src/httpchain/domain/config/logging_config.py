"""Request dump logging configuration model."""

from typing import Literal

from pydantic import BaseModel


class LoggingConfig(BaseModel):
    """Configuration for request dump logging.

    Attributes:
        dump_requests: Log every outgoing request (including each retry)
        level: Log level used for request dumps
    """

    dump_requests: bool = False
    level: Literal["DEBUG", "INFO", "WARNING"] = "INFO"
