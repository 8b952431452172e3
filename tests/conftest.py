"""
pytest configuration and fixtures.
"""

import http.client
import socket
import threading
from typing import Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chainserver import App, HTTPServer, ServerConfig, create_app
from chainserver.http import HTTPRequest, HTTPResponse


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /hi?lang=en&lang=fr HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "Universe"}'
    return (
        b"POST /greetings HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


def make_request(method: str = "GET", path: str = "/", **kwargs) -> HTTPRequest:
    """Build a request by hand, the way the parser would."""
    kwargs.setdefault("client_address", ("127.0.0.1", 54321))
    return HTTPRequest(method=method, path=path, **kwargs)


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def response() -> HTTPResponse:
    return HTTPResponse()


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # OS picks a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
    )


@pytest.fixture
def free_port() -> int:
    """A port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class LiveServer:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.port

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_started(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> Tuple[int, Dict[str, str], bytes]:
        """One request on a fresh connection. Returns (status, headers, body)."""
        conn = http.client.HTTPConnection("127.0.0.1", self.port, timeout=5.0)
        try:
            conn.request(method, path, body=body, headers=headers or {})
            resp = conn.getresponse()
            return resp.status, {k.lower(): v for k, v in resp.getheaders()}, resp.read()
        finally:
            conn.close()

    def send_raw(self, data: bytes) -> bytes:
        """Write raw bytes and read until the server closes the connection."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(data)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


def start_live_server(app: App, config: ServerConfig) -> LiveServer:
    live = LiveServer(HTTPServer(app, config))
    live.start()
    return live


@pytest.fixture
def live_server(config: ServerConfig) -> Generator[LiveServer, None, None]:
    """The demo application on a real socket."""
    live = start_live_server(create_app(), config)
    yield live
    live.stop()


@pytest.fixture
def serve(config: ServerConfig):
    """Start any App on a real socket; stopped after the test."""
    started = []

    def _serve(app: App, **overrides) -> LiveServer:
        cfg = ServerConfig(**{**config.__dict__, **overrides})
        live = start_live_server(app, cfg)
        started.append(live)
        return live

    yield _serve

    for live in started:
        live.stop()
