"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stdinhttp import CannedResponse, CannedResponseServer, ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def exchange(port: int, request: Optional[bytes] = b"GET / HTTP/1.1\r\n\r\n",
             half_close: bool = False, timeout: float = 5.0) -> bytes:
    """
    Connect, optionally send ``request``, and read until the server closes.

    Returns everything the server sent.
    """
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        if request:
            sock.sendall(request)
        if half_close:
            sock.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # Not a test class

    def __init__(self, server: CannedResponseServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:  # Surface bind errors to the test
            self.error = e

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error!r}")

    def stop(self):
        """Stop the server and wait for run() to return."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=15.0)


@pytest.fixture
def payload() -> bytes:
    return b"<h1>hello from stdin</h1>\n"


@pytest.fixture
def run_server():
    """Factory fixture: start an already-built server, stop it afterwards."""
    started = []

    def _run(server: CannedResponseServer) -> TestServer:
        srv = TestServer(server)
        srv.start()
        started.append(srv)
        return srv

    yield _run

    for srv in started:
        srv.stop()


@pytest.fixture
def make_server(config: ServerConfig, run_server):
    """Factory fixture: start a server for a given response and config overrides."""

    def _make(response: CannedResponse, **overrides) -> TestServer:
        cfg = ServerConfig(**{**config.__dict__, **overrides})
        return run_server(CannedResponseServer(response, cfg))

    return _make


@pytest.fixture
def test_server(make_server, payload: bytes) -> Generator[TestServer, None, None]:
    """A running server serving the sample payload."""
    yield make_server(CannedResponse(body=payload))


@pytest.fixture
def client():
    """The exchange() helper, as a fixture."""
    return exchange
