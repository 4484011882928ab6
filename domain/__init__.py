"""PubTator3 domain layer: HTTP client, query construction and errors."""

from .errors import InvalidArgument, PubTatorError, TransportError, UpstreamError  # noqa: F401
from .pubtator import PubTatorClient, TokenBucket  # noqa: F401

__all__ = [
    "InvalidArgument",
    "PubTatorClient",
    "PubTatorError",
    "TokenBucket",
    "TransportError",
    "UpstreamError",
]
