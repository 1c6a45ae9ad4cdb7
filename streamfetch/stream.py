"""Caller-facing async byte stream with backpressure."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import Any, Awaitable, Callable

from .decompress import AutoDecompressor, DecodeMode

DEFAULT_HIGH_WATER_MARK = 16

# Queue marker for a successful end of stream
_EOF = object()


class OutputStream:
    """Readable stream of decoded response bytes.

    Data is produced by a background task and handed over through a bounded
    queue: when the consumer falls behind by ``high_water_mark`` chunks the
    producer stops reading from the network until there is room again.
    The stream ends exactly once, either normally or with an error.

    Example:
        async with request("https://example.com") as stream:
            async for chunk in stream:
                sink.write(chunk)
    """

    def __init__(self, url: str, high_water_mark: int = DEFAULT_HIGH_WATER_MARK):
        """Initialize stream.

        Args:
            url: URL the stream's body comes from.
            high_water_mark: Maximum number of decoded chunks buffered ahead
                             of the consumer.
        """
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be >= 1")

        self.url = url
        self.decoder = AutoDecompressor()

        # Populated when response headers arrive
        self.status_code: int | None = None
        self.headers: dict[str, str] = {}

        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=high_water_mark)
        self._flowing = asyncio.Event()
        self._flowing.set()

        self._producer: Callable[[], Awaitable[None]] | None = None
        self._task: asyncio.Task[None] | None = None
        self._ended = False
        self._closed = False
        self._error: BaseException | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def decode_mode(self) -> DecodeMode:
        """Framing detected for this body."""
        return self.decoder.mode

    @property
    def ended(self) -> bool:
        """Whether the terminal event (end or error) has been consumed."""
        return self._ended

    @property
    def closed(self) -> bool:
        """Whether aclose() has been called."""
        return self._closed

    @property
    def error(self) -> BaseException | None:
        """Error the stream terminated with, if any."""
        return self._error

    @property
    def is_paused(self) -> bool:
        """Whether upstream reads are paused."""
        return not self._flowing.is_set()

    # -------------------------------------------------------------------------
    # Flow control
    # -------------------------------------------------------------------------

    def pause(self) -> None:
        """Stop pulling data from upstream until resume() is called."""
        self._flowing.clear()

    def resume(self) -> None:
        """Resume pulling data from upstream."""
        self._flowing.set()

    # -------------------------------------------------------------------------
    # Consumer API
    # -------------------------------------------------------------------------

    def __aiter__(self) -> "OutputStream":
        return self

    async def __anext__(self) -> bytes:
        if self._ended or self._closed:
            raise StopAsyncIteration

        self._ensure_started()
        item = await self._queue.get()

        if item is _EOF:
            self._terminate()
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._terminate()
            self._error = item
            raise item
        return item

    def _terminate(self) -> None:
        self._ended = True
        # Other readers waiting on the queue see a plain end
        self._queue.put_nowait(_EOF)

    async def read(self) -> bytes:
        """Read the remaining body into memory."""
        return b"".join([chunk async for chunk in self])

    async def text(self, encoding: str = "utf-8", errors: str = "strict") -> str:
        """Read the remaining body and decode it as text."""
        return (await self.read()).decode(encoding, errors=errors)

    async def pipe(self, destination: Any) -> int:
        """Copy the remaining body into a writable destination.

        The destination needs a ``write(chunk)`` method, which may be a
        coroutine. An async ``drain()`` (as on ``asyncio.StreamWriter``) is
        awaited after each write.

        Returns:
            Number of bytes written.
        """
        total = 0
        drain = getattr(destination, "drain", None)
        async for chunk in self:
            result = destination.write(chunk)
            if inspect.isawaitable(result):
                await result
            if drain is not None:
                await drain()
            total += len(chunk)
        return total

    async def aclose(self) -> None:
        """Abort the stream and release network resources."""
        if self._closed:
            return
        self._closed = True
        self._flowing.set()

        if self._task is not None and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task

        # Wake readers blocked in __anext__
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_EOF)

    async def __aenter__(self) -> "OutputStream":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Producer API
    # -------------------------------------------------------------------------

    def start(self, producer: Callable[[], Awaitable[None]]) -> None:
        """Attach the coroutine that fills this stream.

        Runs immediately when called inside an event loop, otherwise on the
        first read.
        """
        if self._producer is not None:
            raise RuntimeError("Stream already has a producer")
        self._producer = producer
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._ensure_started()

    def _ensure_started(self) -> None:
        if self._task is None and self._producer is not None:
            self._task = asyncio.get_running_loop().create_task(self._producer())

    async def write(self, chunk: bytes) -> None:
        """Queue a decoded chunk, waiting while paused or full."""
        if not chunk:
            return
        await self._flowing.wait()
        await self._queue.put(chunk)

    async def end(self) -> None:
        """Signal successful completion."""
        await self._queue.put(_EOF)

    async def fail(self, error: BaseException) -> None:
        """Signal termination with an error."""
        await self._queue.put(error)
