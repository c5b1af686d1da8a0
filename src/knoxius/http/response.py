"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Finalizes exactly one response per request and puts it on the wire.

=============================================================================
WIRE LAYOUT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     RESPONSE ON THE WIRE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTP/1.1 200 OK\r\n                       ← status line           │
    │   Connection: keep-alive\r\n                ← always, first         │
    │   Content-Type: application/json\r\n        ┐ only when a body      │
    │   Content-Length: 27\r\n                    ┘ is present            │
    │   Location: /sprint/42\r\n                  ← response.headers,     │
    │                                               in insertion order    │
    │   Content-Encoding: gzip\r\n                ← when compressed       │
    │   X-Powered-By: Knoxius Servius\r\n         ┐ always, after the     │
    │   Access-Control-Allow-Origin: *\r\n        ┘ handler's headers     │
    │   Set-Cookie: session=ab12\r\n              ← one per cookie        │
    │   \r\n                                                               │
    │   <body bytes>                              ← skipped for HEAD      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PERSISTENCE
=============================================================================

The Connection header value is a pure function of what the client declared
and whether the response forced a close:

    force_close?          → "close"
    request value blank?  → "close"
    otherwise             → the request value, verbatim

The session keeps the socket open unless that token is "close".

Handlers cannot override the headers the writer emits itself: a
``response.headers`` entry named Connection, Content-Type, Content-Length,
Content-Encoding, X-Powered-By or Access-Control-Allow-Origin (any case) is
ignored.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

If the client's Accept-Encoding mentions gzip and there is a body, the body
is gzip-compressed, ``Content-Encoding: gzip`` is added, the content type
gets ``; charset=utf-8`` and Content-Length is the compressed size.

=============================================================================
"""

import gzip
import logging
import socket
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .errors import DoubleResponse
from .request import HTTPMethod, Request
from .status_codes import HTTPStatus, status_token


logger = logging.getLogger(__name__)

POWERED_BY = "Knoxius Servius"

AUTH_REQUIRED_BODY = "<b>401, Thou must login before slaying dragons.</b>"
SERVER_FAILURE_BODY = (
    "<b>500, Oh fiddlesticks! That's an error and it is all YOUR fault.</b>"
)
REDIRECT_BODY = '{"success":true}'

# Written by serialize() itself; same-named handler headers are dropped.
RESERVED_HEADERS = frozenset({
    "connection",
    "content-type",
    "content-length",
    "content-encoding",
    "x-powered-by",
    "access-control-allow-origin",
})


@dataclass
class Response:
    """
    Response state for one request, filled in by the handler.

    Attributes:
        status:       Status token, e.g. "200 OK". Set when written.
        headers:      Extra headers, emitted in insertion order.
        powered_by:   X-Powered-By value.
        set_cookies:  Cookie name → value, one Set-Cookie line each.
        body:         Body text, None for no body.
        content_type: Content-Type, "text/html" if a body has none.
        written:      True once the response went out.
        force_close:  Close the connection after this response.
    """

    status: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    set_cookies: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    content_type: Optional[str] = None
    written: bool = False
    force_close: bool = False
    powered_by: str = POWERED_BY

    def set_header(self, name: str, value: str) -> "Response":
        """Set a header (last write wins). Returns self for chaining."""
        self.headers[name] = value
        return self

    def set_cookie(self, name: str, value: str) -> "Response":
        self.set_cookies[name] = value
        return self

    @property
    def has_body(self) -> bool:
        return self.body is not None and bool(self.body.strip())


def connection_token(request_value: Optional[str], force_close: bool) -> str:
    """
    Value of the Connection header we send back.

        >>> connection_token("keep-alive", False)
        'keep-alive'
        >>> connection_token("", False)
        'close'
        >>> connection_token("keep-alive", True)
        'close'
    """
    if force_close or not (request_value or "").strip():
        return "close"
    return request_value.strip()


def keeps_alive(token: str) -> bool:
    """True unless the Connection token is ``close`` (any case)."""
    return token.strip().lower() != "close"


def accepts_gzip(request: Request) -> bool:
    return "gzip" in (request.get_header("Accept-Encoding") or "")


def serialize(request: Request, response: Response) -> bytes:
    """
    Build the response bytes. Pure: ``response`` is not modified.

    Args:
        request: The request being answered (Connection, Accept-Encoding,
                 method).
        response: Response with ``status`` already set.

    Returns:
        Status line, headers, blank line and (unless HEAD) the body.
    """
    payload = b""
    content_type = None
    compressed = False

    if response.has_body:
        content_type = response.content_type or "text/html"
        payload = response.body.encode("utf-8")
        if accepts_gzip(request):
            payload = gzip.compress(payload)
            compressed = True
            content_type += "; charset=utf-8"

    lines = [
        f"HTTP/1.1 {response.status}",
        f"Connection: {connection_token(request.connection, response.force_close)}",
    ]
    if content_type is not None:
        lines.append(f"Content-Type: {content_type}")
        lines.append(f"Content-Length: {len(payload)}")
    for name, value in response.headers.items():
        if name.lower() in RESERVED_HEADERS:
            logger.debug(f"Ignoring handler header {name!r}")
            continue
        lines.append(f"{name}: {value}")
    if compressed:
        lines.append("Content-Encoding: gzip")
    lines.append(f"X-Powered-By: {response.powered_by}")
    lines.append("Access-Control-Allow-Origin: *")
    for name, value in response.set_cookies.items():
        lines.append(f"Set-Cookie: {name}={value}")
    lines.append("")

    head = ("\r\n".join(lines) + "\r\n").encode("utf-8")
    if request.method is HTTPMethod.HEAD:
        return head
    return head + payload


class ResponseWriter:
    """
    Writes the response for one request to a socket, at most once.

    Usage (inside a handler, via the session):

        session.response.set_cookie("session", token)
        session.write_success('{"ok": true}')

    A second write raises ``DoubleResponse``; the first response's bytes
    are already on the wire and stay untouched.
    """

    def __init__(self, sock: socket.socket, request: Request, response: Response):
        self.sock = sock
        self.request = request
        self.response = response

    @property
    def connection(self) -> str:
        """Connection token this request's response uses."""
        return connection_token(self.request.connection, self.response.force_close)

    def write_response(
        self,
        status: Union[HTTPStatus, str],
        body: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        """
        Finalize the response and send it.

        Raises:
            DoubleResponse: A response was already written for this request.
            OSError: The socket failed while sending.
        """
        if self.response.written:
            raise DoubleResponse()

        self.response.status = status_token(status)
        self.response.body = body
        if content_type is not None:
            self.response.content_type = content_type

        data = serialize(self.request, self.response)
        self.response.written = True
        logger.debug(f"Sending {len(data)} bytes: {self.response.status}")
        self.sock.sendall(data)

    def write_success(
        self, body: Optional[str] = None, content_type: str = "application/json"
    ) -> None:
        self.write_response(HTTPStatus.OK, body, content_type)

    def write_redirect(
        self,
        location: str,
        body: Optional[str] = REDIRECT_BODY,
        content_type: str = "application/json",
    ) -> None:
        self.response.set_header("Location", location)
        self.write_response(HTTPStatus.FOUND, body, content_type)

    def write_auth_required(
        self,
        basic_authentication: bool = True,
        login_message: str = "Login Required",
        body: Optional[str] = AUTH_REQUIRED_BODY,
        content_type: Optional[str] = None,
    ) -> None:
        """401, optionally with a ``WWW-Authenticate: Basic`` challenge."""
        if basic_authentication:
            self.response.set_header(
                "WWW-Authenticate", f'Basic realm="{login_message}"'
            )
        self.write_response(HTTPStatus.UNAUTHORIZED, body, content_type)

    def write_server_failure(self, body: Optional[str] = SERVER_FAILURE_BODY) -> None:
        """500 that also closes the connection afterwards."""
        self.response.force_close = True
        self.response.content_type = None
        self.write_response(HTTPStatus.INTERNAL_SERVER_ERROR, body)
