"""Streaming GET requests with transparent decompression.

This package issues HTTP GET requests and hands back the response body as
an async byte stream, decoded on the fly whatever its compression:

- gzip and zlib bodies detected by their leading bytes
- brotli and raw deflate bodies decoded when the server declares them
- everything else passed through untouched
- backpressure between network reads and the consumer
- reusable connection pools with keep-alive, timeout and TLS settings

Basic usage:

    from streamfetch import request, agent

    # One-off request with a private connection pool
    stream = request("https://example.com")
    html = await stream.text()

    # Shared pool for many requests
    async with agent(connections=10, keepAliveTimeout=30) as pool:
        async with request("https://example.com/big.json", pool) as stream:
            async for chunk in stream:
                handle(chunk)

    # Verbose mode
    stream = request("https://example.com", verbose=True)
"""

from .agent import Agent, agent
from .client import request
from .config import AgentOptions, ConnectOptions
from .decompress import AutoDecompressor, DecodeMode, iter_decompressed
from .models import (
    Request,
    StreamFetchError,
    TransportError,
    HeadersTimeoutError,
    BodyTimeoutError,
    DecompressionError,
)
from .stream import OutputStream
from ._debug import DebugInfo, DebugOutput

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "request",
    "agent",
    # Pooling
    "Agent",
    "AgentOptions",
    "ConnectOptions",
    # Streams and decoding
    "OutputStream",
    "AutoDecompressor",
    "DecodeMode",
    "iter_decompressed",
    # Models
    "Request",
    # Exceptions
    "StreamFetchError",
    "TransportError",
    "HeadersTimeoutError",
    "BodyTimeoutError",
    "DecompressionError",
    # Debugging
    "DebugInfo",
    "DebugOutput",
    # Version
    "__version__",
]
