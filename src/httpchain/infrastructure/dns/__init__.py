"""Custom DNS resolution and resilient dialing"""

from httpchain.infrastructure.dns.adapter import ResilientHTTPAdapter
from httpchain.infrastructure.dns.dialer import DialOutcome, ResilientDialer
from httpchain.infrastructure.dns.resolver import Resolver

__all__ = ["DialOutcome", "ResilientDialer", "ResilientHTTPAdapter", "Resolver"]
