"""Debug/verbose mode for request streams."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, TextIO


@dataclass
class DebugInfo:
    """Debug information for one request/stream cycle.

    Captures transport and decoding details: which pool served the request,
    what the server said about the body and what the decoder made of it.
    """

    # Request info
    timestamp: datetime
    url: str
    method: str = "GET"
    shared_agent: bool = False

    # Response details (populated once headers arrive)
    status_code: int | None = None
    http_version: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    content_encoding: str | None = None

    # Decoding details (populated when the stream terminates)
    decode_mode: str | None = None
    bytes_received: int = 0
    bytes_emitted: int = 0
    chunks_emitted: int = 0
    time_to_first_chunk: float | None = None
    elapsed: float = 0.0

    # Error info
    error: str | None = None
    error_kind: str | None = None
    cancelled: bool = False


class DebugOutput:
    """Handles verbose output formatting and dispatch."""

    def __init__(
        self,
        enabled: bool = False,
        output: TextIO | None = None,
        callback: Callable[[DebugInfo], None] | None = None,
    ):
        """Initialize debug output handler.

        Args:
            enabled: Whether verbose output is enabled.
            output: Output stream (defaults to stderr).
            callback: Optional callback for programmatic capture. Called even
                      when printing is disabled.
        """
        self.enabled = enabled
        self.output = output or sys.stderr
        self.callback = callback

    @property
    def active(self) -> bool:
        """Whether anything will consume debug info."""
        return self.enabled or self.callback is not None

    def log_request(self, info: DebugInfo) -> None:
        """Log debug info for a finished request/stream cycle.

        Args:
            info: Debug information to log.
        """
        if self.callback:
            self.callback(info)

        if self.enabled:
            self._print_formatted(info)

    def _print_formatted(self, info: DebugInfo) -> None:
        """Print formatted debug output to stream.

        Args:
            info: Debug information to format and print.
        """
        out = self.output
        sep = "=" * 80

        # Header
        out.write(f"\n{sep}\n")
        out.write(f"[{info.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] ")
        out.write(f"{info.method} {info.url}\n")
        out.write(f"{sep}\n")

        parts = [f"Agent: {'shared' if info.shared_agent else 'private'}"]
        if info.http_version:
            parts.append(f"HTTP: {info.http_version}")
        out.write(" | ".join(parts) + "\n")

        out.write("\n" + "-" * 80 + "\n")

        if info.status_code is not None:
            out.write(f"< HTTP {info.status_code}")
            if info.elapsed:
                out.write(f"  [{info.elapsed:.3f}s]")
            out.write("\n")

            if info.response_headers:
                out.write("\n< Response Headers:\n")
                for header, value in info.response_headers.items():
                    if len(value) > 80:
                        value = value[:77] + "..."
                    out.write(f"  {header}: {value}\n")

        # Decoding summary
        if info.decode_mode:
            out.write(f"\n< Decoder: {info.decode_mode}")
            if info.content_encoding:
                out.write(f" (Content-Encoding: {info.content_encoding})")
            out.write("\n")
            out.write(
                f"< Received: {info.bytes_received:,} bytes, "
                f"Emitted: {info.bytes_emitted:,} bytes "
                f"in {info.chunks_emitted} chunks\n"
            )
        if info.time_to_first_chunk is not None:
            out.write(f"< First chunk after {info.time_to_first_chunk:.3f}s\n")

        if info.error:
            out.write(f"< ERROR [{info.error_kind or 'error'}]: {info.error}\n")
        elif info.cancelled:
            out.write("< CANCELLED\n")

        out.write(f"{sep}\n")
        out.flush()
