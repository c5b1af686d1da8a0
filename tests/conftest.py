"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Dict, Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from knoxius import HTTPServer, ServerConfig
from knoxius.core import LineReader, Session


@pytest.fixture
def sample_get_request() -> bytes:
    """GET with a query string, cookies and keep-alive."""
    return (
        b"GET /sprint/42?expand=stories&page=2 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Cookie: session=ab12; theme=dark\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """POST with a JSON body and no Connection header."""
    body = b'{"name": "Sprint 7", "goal": "ship it"}'
    return (
        b"POST /sprints HTTP/1.1\r\n"
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
        timeout=2.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """Connected (server side, client side) sockets."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for sock in (server_side, client_side):
        try:
            sock.close()
        except OSError:
            pass


def reader_for(data: bytes, **kwargs) -> LineReader:
    """LineReader over a socket that has ``data`` queued and then EOF."""
    server_side, client_side = socket.socketpair()
    client_side.sendall(data)
    client_side.shutdown(socket.SHUT_WR)
    client_side.close()
    kwargs.setdefault("timeout", 2.0)
    return LineReader(server_side, **kwargs)


# =============================================================================
# RAW RESPONSE PARSING
# =============================================================================

class RawResponse:
    """One HTTP response read back off a socket."""

    def __init__(self, status: str, headers: List[Tuple[str, str]], body: bytes):
        self.status = status
        self.header_list = headers
        self.headers: Dict[str, str] = dict(headers)
        self.body = body

    @property
    def status_code(self) -> int:
        return int(self.status.split(" ", 1)[0])

    @property
    def header_names(self) -> List[str]:
        return [name for name, _ in self.header_list]


def _recv_until(sock: socket.socket, buffer: bytearray, marker: bytes) -> int:
    while marker not in buffer:
        chunk = sock.recv(4096)
        if not chunk:
            raise ConnectionError("Connection closed before response completed")
        buffer.extend(chunk)
    return buffer.index(marker)


def read_response(
    sock: socket.socket, buffer: Optional[bytearray] = None, head_only: bool = False
) -> RawResponse:
    """
    Read exactly one response from ``sock``.

    ``buffer`` carries bytes of a following response between calls on a
    kept-alive connection.
    """
    buffer = buffer if buffer is not None else bytearray()
    end = _recv_until(sock, buffer, b"\r\n\r\n")
    head = bytes(buffer[:end]).decode("utf-8")
    del buffer[:end + 4]

    status_line, *header_lines = head.split("\r\n")
    assert status_line.startswith("HTTP/1.1 ")
    headers = []
    for line in header_lines:
        name, _, value = line.partition(": ")
        headers.append((name, value))

    length = 0 if head_only else int(dict(headers).get("Content-Length", "0"))
    while len(buffer) < length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        buffer.extend(chunk)
    body = bytes(buffer[:length])
    del buffer[:length]

    return RawResponse(status_line[len("HTTP/1.1 "):], headers, body)


def is_closed(sock: socket.socket, timeout: float = 2.0) -> bool:
    """True if the peer closed the connection (EOF within ``timeout``)."""
    sock.settimeout(timeout)
    try:
        return sock.recv(1) == b""
    except socket.timeout:
        return False
    except OSError:
        return True


# =============================================================================
# SESSION HELPERS
# =============================================================================

class SessionRunner:
    """Runs a Session on one end of a socketpair in a background thread."""

    def __init__(self, handler: Callable[[Session], None], config: ServerConfig, **kwargs):
        self.server_side, self.client = socket.socketpair()
        self.session = Session(self.server_side, ("127.0.0.1", 50000), handler, config, **kwargs)
        self._thread = threading.Thread(target=self.session.run, daemon=True)

    def start(self) -> "SessionRunner":
        self._thread.start()
        return self

    def send(self, data: bytes) -> None:
        self.client.sendall(data)

    def join(self, timeout: float = 5.0) -> bool:
        """Wait for the session to finish; True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def close(self) -> None:
        try:
            self.client.close()
        except OSError:
            pass
        self.join()


@pytest.fixture
def run_session(config: ServerConfig):
    """Factory: ``run_session(handler)`` → started SessionRunner."""
    runners: List[SessionRunner] = []

    def factory(handler: Callable[[Session], None], **kwargs) -> SessionRunner:
        runner = SessionRunner(handler, kwargs.pop("config", config), **kwargs).start()
        runners.append(runner)
        return runner

    yield factory

    for runner in runners:
        runner.close()


# =============================================================================
# LIVE SERVER
# =============================================================================

class LiveServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "LiveServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def connect(self) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return sock

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=15.0)


@pytest.fixture
def live_server(config: ServerConfig) -> Generator[LiveServer, None, None]:
    """Server on an OS-assigned port with a few test routes."""
    server = HTTPServer(config)

    @server.get("/test")
    def test_route(session):
        session.write_success('{"status": "ok"}')

    @server.post("/echo")
    def echo_route(session):
        session.write_success(session.request.body)

    live = LiveServer(server).start()
    yield live
    live.stop()
