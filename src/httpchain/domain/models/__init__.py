"""Request execution models."""

from httpchain.domain.models.attempt import Attempt
from httpchain.domain.models.context import RequestContext
from httpchain.domain.models.request import Body, BodyFactory, Request

__all__ = [
    "Attempt",
    "Body",
    "BodyFactory",
    "Request",
    "RequestContext",
]
