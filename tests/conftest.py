"""
pytest configuration and fixtures.
"""

import threading
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpware import HTTPServer, ServerConfig
from httpware.http import HTTPRequest


DATA_BIN = bytes(range(256)) * 4


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /media/clip.mp4?start=10&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Range: bytes=0-99\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample form POST carrying a method override."""
    body = b"_method=delete&name=clip"
    return (
        b"POST /media/clip.mp4 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """
    Build an HTTPRequest directly, the way the parser would leave it
    (header names lowercased).
    """
    def factory(
        method: str = "GET",
        path: str = "/",
        headers: Optional[dict] = None,
        body: bytes = b"",
        version: str = "HTTP/1.1",
    ) -> HTTPRequest:
        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body,
            client_address=("127.0.0.1", 50000),
        )
    return factory


@pytest.fixture
def static_root(tmp_path: Path) -> Path:
    """
    A small document root:

        index.html        "<h1>Hello</h1>"
        hello.txt         "Hello, World!\\n"
        data.bin          1024 bytes, 0..255 repeated
        empty.txt         0 bytes
        unknown.zzz       "???"
        sub/nested.css    "body{}"
    """
    (tmp_path / "index.html").write_text("<h1>Hello</h1>")
    (tmp_path / "hello.txt").write_text("Hello, World!\n")
    (tmp_path / "data.bin").write_bytes(DATA_BIN)
    (tmp_path / "empty.txt").write_bytes(b"")
    (tmp_path / "unknown.zzz").write_text("???")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "nested.css").write_text("body{}")
    return tmp_path


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=2.0,
        log_level="WARNING",
    )


class RunningServer:
    """HTTPServer running in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    @property
    def host(self) -> str:
        return self.server.address[0]

    @property
    def port(self) -> int:
        return self.server.address[1]

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@pytest.fixture
def serve(config: ServerConfig) -> Generator[Callable[..., RunningServer], None, None]:
    """
    Start a server for an app: ``running = serve(app, *middleware, http2=True)``.

    Keyword arguments override fields of the ``config`` fixture.
    """
    started = []

    def start(app, *middleware, **overrides) -> RunningServer:
        for name, value in overrides.items():
            setattr(config, name, value)

        server = HTTPServer(app, config)
        for m in middleware:
            server.use(m)

        running = RunningServer(server)
        running.start()
        started.append(running)
        return running

    yield start

    for running in started:
        running.stop()
