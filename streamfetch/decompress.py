"""Streaming decompression with content sniffing.

The body framing is not trusted from headers alone: the first bytes are
inspected to pick gzip or zlib by signature. Codecs without a signature
(brotli, raw deflate) are only chosen when the response's Content-Encoding
names them. Anything else is passed through unchanged.

Basic usage:

    decoder = AutoDecompressor()
    for raw in chunks:
        for chunk in decoder.feed(raw):
            sink.write(chunk)
    for chunk in decoder.finish():
        sink.write(chunk)
"""

from __future__ import annotations

import zlib
from enum import Enum
from typing import Any, Iterable, Iterator

import brotli

from .models import DecompressionError

GZIP_MAGIC = b"\x1f\x8b"
SNIFF_LENGTH = 2
OUTPUT_CHUNK_SIZE = 64 * 1024

_GZIP_WBITS = 16 + zlib.MAX_WBITS
_ZLIB_WBITS = zlib.MAX_WBITS
_RAW_DEFLATE_WBITS = -zlib.MAX_WBITS


class DecodeMode(str, Enum):
    """Decoder state. Leaves SNIFFING exactly once per stream."""

    SNIFFING = "sniffing"
    GZIP = "gzip"
    DEFLATE = "deflate"
    BROTLI = "brotli"
    PASSTHROUGH = "passthrough"


def is_zlib_header(head: bytes) -> bool:
    """Check for an RFC 1950 header: deflate method, valid window, FCHECK."""
    if len(head) < 2:
        return False
    cmf, flg = head[0], head[1]
    return cmf & 0x0F == 8 and cmf >> 4 <= 7 and ((cmf << 8) | flg) % 31 == 0


def _parse_encodings(content_encoding: str | None) -> list[str]:
    if not content_encoding:
        return []
    return [
        encoding.strip().lower()
        for encoding in content_encoding.split(",")
        if encoding.strip()
    ]


class AutoDecompressor:
    """Incremental decoder that detects its own framing.

    Feed raw chunks of any size, including empty ones. Output is produced
    as an iterator of non-empty chunks; zlib-based modes never yield more
    than OUTPUT_CHUNK_SIZE bytes at once.
    """

    def __init__(self, content_encoding: str | None = None):
        """Initialize decoder.

        Args:
            content_encoding: Optional Content-Encoding header value used to
                              choose codecs that carry no signature.
        """
        self._mode = DecodeMode.SNIFFING
        self._encodings = _parse_encodings(content_encoding)
        self._pending = b""
        self._decompressor: Any = None
        self._finished = False
        self.bytes_in = 0
        self.bytes_out = 0

    @property
    def mode(self) -> DecodeMode:
        """Current decoder state."""
        return self._mode

    @property
    def finished(self) -> bool:
        """Whether finish() has been called."""
        return self._finished

    def hint(self, content_encoding: str | None) -> None:
        """Record the response Content-Encoding.

        Has no effect once a mode has been selected.
        """
        if self._mode is DecodeMode.SNIFFING:
            self._encodings = _parse_encodings(content_encoding)

    def feed(self, data: bytes) -> Iterator[bytes]:
        """Decode the next raw chunk.

        Raises:
            DecompressionError: If compressed data is malformed.
            RuntimeError: If called after finish().
        """
        if self._finished:
            raise RuntimeError("feed() called after finish()")
        self.bytes_in += len(data)

        if self._mode is DecodeMode.SNIFFING:
            self._pending += data
            if len(self._pending) < SNIFF_LENGTH:
                return
            data, self._pending = self._pending, b""
            self._select_mode(data)

        for chunk in self._decode(data):
            self.bytes_out += len(chunk)
            yield chunk

    def finish(self) -> Iterator[bytes]:
        """Flush remaining output and verify the stream is complete.

        Raises:
            DecompressionError: If a compressed stream ended early.
        """
        if self._finished:
            return
        self._finished = True

        if self._mode is DecodeMode.SNIFFING:
            data, self._pending = self._pending, b""
            if data:
                self._select_mode(data)
            else:
                self._mode = DecodeMode.PASSTHROUGH
            for chunk in self._decode(data):
                self.bytes_out += len(chunk)
                yield chunk

        if self._mode in (DecodeMode.GZIP, DecodeMode.DEFLATE):
            tail = self._decompressor.flush()
            if tail:
                self.bytes_out += len(tail)
                yield tail
            if not self._decompressor.eof:
                raise DecompressionError(
                    f"Unexpected end of {self._mode.value} stream",
                    mode=self._mode.value,
                )
        elif self._mode is DecodeMode.BROTLI:
            if not self._decompressor.is_finished():
                raise DecompressionError(
                    "Unexpected end of brotli stream",
                    mode=self._mode.value,
                )

    def _select_mode(self, head: bytes) -> None:
        """Pick the decoder for this stream, most specific signature first."""
        if head[:SNIFF_LENGTH] == GZIP_MAGIC:
            self._mode = DecodeMode.GZIP
            self._decompressor = zlib.decompressobj(_GZIP_WBITS)
        elif "br" in self._encodings:
            # brotli has no signature; a declared br body may look like zlib
            self._mode = DecodeMode.BROTLI
            self._decompressor = brotli.Decompressor()
        elif is_zlib_header(head):
            self._mode = DecodeMode.DEFLATE
            self._decompressor = zlib.decompressobj(_ZLIB_WBITS)
        elif "deflate" in self._encodings:
            self._mode = DecodeMode.DEFLATE
            self._decompressor = zlib.decompressobj(_RAW_DEFLATE_WBITS)
        else:
            self._mode = DecodeMode.PASSTHROUGH

    def _decode(self, data: bytes) -> Iterator[bytes]:
        if self._mode is DecodeMode.PASSTHROUGH:
            if data:
                yield data
        elif self._mode is DecodeMode.BROTLI:
            if data:
                yield from self._unbrotli(data)
        else:
            yield from self._inflate(data)

    def _unbrotli(self, data: bytes) -> Iterator[bytes]:
        if self._decompressor.is_finished():
            raise DecompressionError(
                "Unexpected data after end of brotli stream", mode="brotli"
            )
        try:
            chunk = self._decompressor.process(data)
        except brotli.error as exc:
            raise DecompressionError(
                f"Invalid brotli data: {exc}", mode="brotli"
            ) from exc
        if chunk:
            yield chunk

    def _inflate(self, data: bytes) -> Iterator[bytes]:
        mode = self._mode.value
        while True:
            decompressor = self._decompressor
            if decompressor.eof:
                # gzip allows concatenated members and zero padding
                if self._mode is DecodeMode.GZIP:
                    data = data.lstrip(b"\x00")
                if not data:
                    return
                if self._mode is not DecodeMode.GZIP:
                    raise DecompressionError(
                        f"Unexpected data after end of {mode} stream", mode=mode
                    )
                decompressor = self._decompressor = zlib.decompressobj(_GZIP_WBITS)

            try:
                chunk = decompressor.decompress(data, OUTPUT_CHUNK_SIZE)
            except zlib.error as exc:
                raise DecompressionError(
                    f"Invalid {mode} data: {exc}", mode=mode
                ) from exc
            if chunk:
                yield chunk

            if decompressor.eof:
                data = decompressor.unused_data
            else:
                data = decompressor.unconsumed_tail
            if not data and len(chunk) < OUTPUT_CHUNK_SIZE:
                return


def iter_decompressed(
    chunks: Iterable[bytes],
    content_encoding: str | None = None,
) -> Iterator[bytes]:
    """Decode an iterable of raw chunks.

    Args:
        chunks: Raw body chunks in arrival order.
        content_encoding: Optional Content-Encoding header value.

    Yields:
        Decoded chunks.
    """
    decoder = AutoDecompressor(content_encoding)
    for raw in chunks:
        yield from decoder.feed(raw)
    yield from decoder.finish()
