"""Request value object and exception hierarchy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .agent import Agent


@dataclass(frozen=True)
class Request:
    """A single GET request.

    Attributes:
        url: Absolute http or https URL.
        agent: Pooling handle to issue the request through. None uses a
               private pool that lives only as long as the request.
    """

    url: str
    agent: "Agent | None" = None


class StreamFetchError(Exception):
    """Base exception for errors terminating an output stream."""

    kind = "error"


class TransportError(StreamFetchError):
    """Error during HTTP transport (DNS, connection, TLS, timeout)."""

    kind = "transport"

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class HeadersTimeoutError(TransportError):
    """Response headers did not arrive within headers_timeout."""

    kind = "headers_timeout"


class BodyTimeoutError(TransportError):
    """Response body stalled for longer than body_timeout."""

    kind = "body_timeout"


class DecompressionError(StreamFetchError):
    """Compressed body is malformed or truncated."""

    kind = "decompression"

    def __init__(self, message: str, mode: str | None = None):
        super().__init__(message)
        self.mode = mode
