"""
=============================================================================
CONNECTION SESSION
=============================================================================

One accepted TCP connection, served request by request until either side
is done with it.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   AWAITING_REQUEST ──► PARSING_REQUEST ──► READING_BODY (POST/PUT)   │
    │          ▲                   │                    │                  │
    │          │                   └────────┬───────────┘                  │
    │          │                            ▼                              │
    │          │                       DISPATCHING                         │
    │          │                   OPTIONS → 200 + Allow                   │
    │          │                   TRACE   → 405                           │
    │          │                   others  → handler(session)              │
    │          │                            │                              │
    │          │                            ▼                              │
    │          └──── keep-alive ──── RESPONSE_SENT ─── close ──► CLOSING    │
    │                                                                │     │
    │                                                                ▼     │
    │                                                             CLOSED   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PERSISTENCE
=============================================================================

After each response the session asks ``connection_token(request value,
force_close)``. Anything but "close" loops back for the next request on the
same socket. A request without a Connection header therefore gets exactly
one response.

=============================================================================
FAILURE RECOVERY
=============================================================================

    TransportError / OSError   log, close, write nothing
    anything else              try a 500 (forces close), swallow a failure
                               of that attempt, log the original, close

An idle connection the client closes, or that sits past
``keep_alive_timeout`` without sending a byte, ends quietly at DEBUG.

=============================================================================
"""

import logging
import socket
import uuid
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from ..config import ServerConfig
from ..http.body import BodyReader
from ..http.errors import ConnectionClosed, ReadTimeout, TransportError
from ..http.request import (
    HTTPMethod,
    Request,
    RequestParser,
    decode_basic_auth,
)
from ..http.response import (
    Response,
    ResponseWriter,
    keeps_alive,
)
from ..http.status_codes import HTTPStatus, is_success_token
from .line_reader import LineReader


ALLOWED_METHODS = "HEAD,GET,POST,PUT,DELETE,OPTIONS"

# Stands in for the request when parsing failed before one existed.
_UNPARSED_REQUEST = Request(method=HTTPMethod.GET, url="", http_version="HTTP/1.1")


class SessionState(Enum):
    """Where a session is in its request cycle."""
    AWAITING_REQUEST = "awaiting_request"  # idle, waiting for a request line
    PARSING_REQUEST = "parsing_request"    # reading headers
    READING_BODY = "reading_body"          # POST/PUT body
    DISPATCHING = "dispatching"            # handler running
    RESPONSE_SENT = "response_sent"        # cycle done, persistence decided next
    CLOSING = "closing"
    CLOSED = "closed"


class Session:
    """
    Serves every request that arrives on one client socket.

    The handler receives the session itself and must produce exactly one
    response through it:

        def handle(session):
            if session.request.url == "/ping":
                session.write_success('{"pong": true}')
            else:
                session.write_response(HTTPStatus.NOT_FOUND)

        Session(client_socket, address, handle).run()

    Attributes:
        id: Short identifier used as the log prefix.
        request: Request of the current cycle (None before parsing).
        response: Response of the current cycle; handlers add headers and
                  cookies to it before writing.
        path_params: Captures filled in by the router.
        requests_handled: Completed request cycles.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: Tuple[str, int],
        handler: Callable[["Session"], None],
        config: Optional[ServerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.sock = sock
        self.address = address
        self.handler = handler
        self.config = config or ServerConfig()
        self.logger = logger or logging.getLogger(__name__)

        self.id = str(uuid.uuid4())[:8]
        self.state = SessionState.AWAITING_REQUEST
        self.requests_handled = 0

        self.reader = LineReader(
            sock,
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            max_line_size=self.config.max_line_size,
        )
        self.parser = RequestParser(self.reader, max_header_size=self.config.max_header_size)
        self.body_reader = BodyReader(
            self.reader,
            max_size=self.config.max_body_size,
            chunk_size=self.config.buffer_size,
        )

        self.request: Optional[Request] = None
        self.response: Optional[Response] = None
        self.path_params: Dict[str, str] = {}
        self._writer: Optional[ResponseWriter] = None

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self) -> None:
        """Serve requests until the connection should close, then close it."""
        self.logger.debug(f"[{self.id}] Connection from {self.address[0]}:{self.address[1]}")
        try:
            while self._serve_one():
                pass
        finally:
            self.close()

    def _serve_one(self) -> bool:
        """
        Run one request cycle.

        Returns:
            True to wait for another request on this socket.
        """
        try:
            request_line = self._await_request()
            if request_line is None:
                return False
            self._process(request_line)
        except (TransportError, OSError) as e:
            self.logger.error(
                f"[{self.id}] Connection to client terminated without proper shutdown: {e}"
            )
            return False
        except Exception as e:
            self._recover(e)
            return False

        return keeps_alive(self._writer.connection)

    def _await_request(self) -> Optional[str]:
        """Request line of the next request, None if the client is done."""
        self.state = SessionState.AWAITING_REQUEST
        timeout = (
            self.config.keep_alive_timeout if self.requests_handled else self.config.timeout
        )
        try:
            return self.reader.read_line(timeout)
        except ConnectionClosed as e:
            if e.partial:
                raise
            self.logger.debug(f"[{self.id}] Client closed the connection")
        except ReadTimeout:
            if self.reader.has_buffered_data:
                raise
            self.logger.debug(f"[{self.id}] Idle timeout after {timeout:.1f}s")
        return None

    def _process(self, request_line: str) -> None:
        self.state = SessionState.PARSING_REQUEST
        self.request = None
        self.path_params = {}
        self.response = Response(powered_by=self.config.powered_by)
        self._writer = None

        request = self.parser.parse(request_line)
        self.request = request
        self.logger.info(f"[{self.id}] {request.method.value} {request.url}")

        if request.method.has_body:
            self.state = SessionState.READING_BODY
            request = request.with_body(self.body_reader.read(request))
            self.request = request

        self._writer = ResponseWriter(self.sock, request, self.response)
        self.state = SessionState.DISPATCHING

        if request.method is HTTPMethod.OPTIONS:
            self.response.set_header("Allow", ALLOWED_METHODS)
            self.write_success()
        elif request.method is HTTPMethod.TRACE:
            self.write_response(HTTPStatus.METHOD_NOT_ALLOWED)
        else:
            self.handler(self)

        self.requests_handled += 1
        self.state = SessionState.RESPONSE_SENT

        if self.response.written:
            self._log_response()
        else:
            self.logger.warning(
                f"[{self.id}] Handler returned without writing a response for "
                f"{request.method.value} {request.url}"
            )

    def _recover(self, error: Exception) -> None:
        """Best-effort 500 after a request-local failure."""
        if self._writer is None:
            self._writer = ResponseWriter(
                self.sock,
                self.request or _UNPARSED_REQUEST,
                self.response or Response(powered_by=self.config.powered_by),
            )
            self.response = self._writer.response

        try:
            self._writer.write_server_failure()
            self._log_response()
        except Exception as secondary:
            self.logger.debug(f"[{self.id}] Could not send 500: {secondary}")

        self.logger.exception(f"[{self.id}] Request failed: {error}", exc_info=error)

    def _log_response(self) -> None:
        status = self.response.status
        level = logging.INFO if is_success_token(status) else logging.WARNING
        self.logger.log(level, f"[{self.id}] Response: {status}")

    # =========================================================================
    # HANDLER API
    # =========================================================================

    def write_response(
        self,
        status: Union[HTTPStatus, str],
        body: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        self._writer.write_response(status, body, content_type)

    def write_success(
        self, body: Optional[str] = None, content_type: str = "application/json"
    ) -> None:
        self._writer.write_success(body, content_type)

    def write_redirect(self, location: str, **kwargs) -> None:
        self._writer.write_redirect(location, **kwargs)

    def write_auth_required(self, **kwargs) -> None:
        self._writer.write_auth_required(**kwargs)

    def write_server_failure(self, **kwargs) -> None:
        self._writer.write_server_failure(**kwargs)

    def query_params(self) -> Dict[str, str]:
        return self.request.query_params()

    def decode_authentication_header(self) -> Optional[str]:
        """``username:password`` from Basic auth, None without it."""
        return decode_basic_auth(self.request)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the socket: FIN first, drain what the client still sends,
        then release the descriptor. Safe to call twice.
        """
        if self.state == SessionState.CLOSED:
            return

        self.state = SessionState.CLOSING

        try:
            self.sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.sock.settimeout(0.5)
            while self.sock.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.sock.close()
        except OSError:
            pass

        self.state = SessionState.CLOSED
        self.logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests"
        )
