"""Shared test fixtures and configuration."""

import gzip
import json
import threading
import time
import zlib
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Generator, Iterable

import brotli
import httpx
import pytest

from streamfetch import Agent, AgentOptions


SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Test Page</title>
</head>
<body>
  <h1>Hello World</h1>
  <p>This is a test HTML page for stream testing.</p>
  <div id="content">
    <ul>
      <li>Item 1</li>
      <li>Item 2</li>
      <li>Item 3</li>
    </ul>
  </div>
</body>
</html>"""

LARGE_HTML = (
    "<!DOCTYPE html>\n<html>\n<head>\n  <title>Large Test Page</title>\n</head>\n"
    "<body>\n  <h1>Large Content Test</h1>\n  "
    + "".join(
        f"<p>This is paragraph {i + 1} with some content to make the response larger.</p>"
        for i in range(100)
    )
    + "\n</body>\n</html>"
)


# ============== Local HTTP Server ==============

class _FixtureHandler(BaseHTTPRequestHandler):
    """Serves the fixture routes used by end-to-end tests."""

    def do_GET(self) -> None:
        routes = {
            "/html": self._send_html,
            "/large": self._send_large,
            "/compressed": self._send_gzip,
            "/deflate": self._send_deflate,
            "/brotli": self._send_brotli,
            "/json": self._send_json,
            "/malformed": self._send_malformed,
            "/truncated": self._send_truncated,
            "/slow-headers": self._send_slow_headers,
            "/slow-body": self._send_slow_body,
        }
        handler = routes.get(self.path)
        if handler is None:
            self._send(404, b"Not Found")
        else:
            handler()

    def _send(self, status: int, body: bytes, headers: dict | None = None) -> None:
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_html(self) -> None:
        self._send(200, SAMPLE_HTML.encode(), {"Content-Type": "text/html"})

    def _send_large(self) -> None:
        self._send(200, LARGE_HTML.encode(), {"Content-Type": "text/html"})

    def _send_gzip(self) -> None:
        self._send(
            200,
            gzip.compress(SAMPLE_HTML.encode()),
            {"Content-Type": "text/html", "Content-Encoding": "gzip"},
        )

    def _send_deflate(self) -> None:
        self._send(
            200,
            zlib.compress(SAMPLE_HTML.encode()),
            {"Content-Type": "text/html", "Content-Encoding": "deflate"},
        )

    def _send_brotli(self) -> None:
        self._send(
            200,
            brotli.compress(SAMPLE_HTML.encode()),
            {"Content-Type": "text/html", "Content-Encoding": "br"},
        )

    def _send_json(self) -> None:
        body = json.dumps({"message": "Hello from test server"}).encode()
        self._send(200, body, {"Content-Type": "application/json"})

    def _send_malformed(self) -> None:
        self._send(200, b"\x1f\x8b" + b"this is not deflate data" * 4,
                   {"Content-Encoding": "gzip"})

    def _send_truncated(self) -> None:
        body = gzip.compress(LARGE_HTML.encode())
        self._send(200, body[: len(body) // 2], {"Content-Encoding": "gzip"})

    def _send_slow_headers(self) -> None:
        time.sleep(1.0)
        self._send(200, b"late")

    def _send_slow_body(self) -> None:
        self.send_response(200)
        self.send_header("Content-Length", "10")
        self.end_headers()
        self.wfile.write(b"01234")
        self.wfile.flush()
        time.sleep(1.0)
        self.wfile.write(b"56789")

    def log_message(self, format: str, *args) -> None:
        pass


@pytest.fixture
def local_server() -> Generator[str, None, None]:
    """Threaded HTTP server on an ephemeral port. Yields its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _FixtureHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


# ============== Mock Transport Fixtures ==============

class ChunkedBody(httpx.AsyncByteStream):
    """Async body that yields the given chunks and records consumption."""

    def __init__(self, chunks: Iterable[bytes], error: Exception | None = None):
        self.chunks = list(chunks)
        self.error = error
        self.produced = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.produced += 1
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


def make_agent(
    handler: Callable[[httpx.Request], httpx.Response],
    **options,
) -> Agent:
    """Agent whose requests are answered by ``handler``."""
    return Agent(AgentOptions(**options), transport=httpx.MockTransport(handler))


@pytest.fixture
def gzip_html() -> bytes:
    """SAMPLE_HTML gzip-compressed."""
    return gzip.compress(SAMPLE_HTML.encode())


@pytest.fixture
def html_bytes() -> bytes:
    """SAMPLE_HTML as bytes."""
    return SAMPLE_HTML.encode()


def stream_response(
    status_code: int = 200,
    chunks: Iterable[bytes] = (),
    headers: dict | None = None,
    error: Exception | None = None,
) -> httpx.Response:
    """Response with an unread streaming body, as a network transport returns."""
    return httpx.Response(status_code, headers=headers, stream=ChunkedBody(chunks, error))
