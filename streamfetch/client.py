"""Request entry point: GET a URL and stream its decoded body."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Callable

import httpx

from ._debug import DebugInfo, DebugOutput
from .agent import Agent, transport_error
from .models import BodyTimeoutError, Request, StreamFetchError
from .stream import DEFAULT_HIGH_WATER_MARK, OutputStream


def request(
    url: str,
    agent: Agent | None = None,
    *,
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    verbose: bool = False,
    debug_callback: Callable[[DebugInfo], None] | None = None,
) -> OutputStream:
    """Issue a GET and return its decompressed body as a stream.

    The stream is returned before any network activity. Connection, TLS,
    timeout and decoding failures are delivered as the stream's terminal
    error rather than raised here. Non-2xx responses are not errors: their
    body is streamed like any other.

    Args:
        url: Absolute http or https URL.
        agent: Pooling handle to reuse connections across requests. None
               uses a private pool closed when the request finishes.
        high_water_mark: Decoded chunks buffered ahead of the consumer.
        verbose: Print a debug summary to stderr when the stream terminates.
        debug_callback: Called with a DebugInfo when the stream terminates.

    Returns:
        OutputStream yielding decoded bytes.

    Example:
        stream = request("https://example.com/feed.xml")
        body = await stream.read()
    """
    req = Request(url=url, agent=agent)
    stream = OutputStream(url, high_water_mark=high_water_mark)
    debug = DebugOutput(enabled=verbose, callback=debug_callback)
    stream.start(lambda: _pump(req, stream, debug))
    return stream


async def _pump(req: Request, stream: OutputStream, debug: DebugOutput) -> None:
    """Move bytes from the transport through the decoder into the stream."""
    owned = req.agent is None
    transport = req.agent or Agent()
    decoder = stream.decoder
    info = DebugInfo(timestamp=datetime.now(), url=req.url, shared_agent=not owned)
    started = time.monotonic()
    error: BaseException | None = None

    async def emit(chunk: bytes) -> None:
        if info.time_to_first_chunk is None:
            info.time_to_first_chunk = time.monotonic() - started
        info.chunks_emitted += 1
        await stream.write(chunk)

    try:
        async with transport.open_stream(req.url) as response:
            stream.status_code = response.status_code
            stream.headers = dict(response.headers)
            info.http_version = response.http_version
            decoder.hint(response.headers.get("content-encoding"))

            async for raw in transport.iter_body(response):
                for chunk in decoder.feed(raw):
                    await emit(chunk)
            for chunk in decoder.finish():
                await emit(chunk)
    except StreamFetchError as e:
        error = e
    except httpx.TimeoutException as e:
        error = BodyTimeoutError(
            f"Response body from {req.url} stalled: {str(e) or type(e).__name__}",
            original_error=e,
        )
    except httpx.HTTPError as e:
        error = transport_error(req.url, e)
    except asyncio.CancelledError:
        info.cancelled = True
        raise
    except Exception as e:
        error = e
    finally:
        # Cleanup failures end the stream too; an earlier error takes precedence
        if owned:
            try:
                await transport.aclose()
            except Exception as e:
                error = error or e
        if debug.active:
            _fill_debug_info(info, stream, error, started)
            try:
                debug.log_request(info)
            except Exception as e:
                error = error or e

    if error is None:
        await stream.end()
    else:
        await stream.fail(error)


def _fill_debug_info(
    info: DebugInfo,
    stream: OutputStream,
    error: BaseException | None,
    started: float,
) -> None:
    info.status_code = stream.status_code
    info.response_headers = dict(stream.headers)
    info.content_encoding = stream.headers.get("content-encoding")
    info.decode_mode = stream.decoder.mode.value
    info.bytes_received = stream.decoder.bytes_in
    info.bytes_emitted = stream.decoder.bytes_out
    info.elapsed = time.monotonic() - started
    if error is not None:
        info.error = str(error)
        info.error_kind = getattr(error, "kind", type(error).__name__)
