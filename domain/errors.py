"""Failures raised by the PubTator3 client."""

from __future__ import annotations

from typing import Optional


class PubTatorError(RuntimeError):
    """Base class for literature API failures."""


class InvalidArgument(PubTatorError, ValueError):
    """Raised when a tool call is malformed; never retried."""


class UpstreamError(PubTatorError):
    """Raised when PubTator3 answers with a non-2xx status."""

    def __init__(self, status_code: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"PubTator3 returned HTTP {status_code}")
        self.status_code = status_code


class TransportError(PubTatorError):
    """Raised when the HTTP request could not be completed."""
