"""
=============================================================================
HTTP PROTOCOL
=============================================================================

Everything that turns socket bytes into requests and responses back into
socket bytes. Nothing here touches a listening socket or a thread.

    request line + headers   → request.py     (RequestParser, Request)
    Content-Length body      → body.py        (BodyReader)
    status + headers + body  → response.py    (ResponseWriter, Response)
    (method, path) → handler → router.py      (Router)
    what can go wrong        → errors.py

=============================================================================
"""

from .body import BodyReader
from .errors import (
    ClientDisconnected,
    ConnectionClosed,
    DoubleResponse,
    InvalidContentLength,
    KnoxiusError,
    HeadersTooLarge,
    LineTooLong,
    MalformedAuthorization,
    MalformedHeaderLine,
    MalformedQueryString,
    MalformedRequestLine,
    PayloadTooLarge,
    ProtocolError,
    ReadTimeout,
    TransportError,
)
from .request import (
    HTTPMethod,
    Request,
    RequestParser,
    basic_credentials,
    decode_basic_auth,
    parse_cookies,
    parse_query,
)
from .response import Response, ResponseWriter, connection_token, keeps_alive
from .router import Route, Router
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPMethod",
    "Request",
    "RequestParser",
    "BodyReader",
    "parse_cookies",
    "parse_query",
    "decode_basic_auth",
    "basic_credentials",

    # Response writing
    "Response",
    "ResponseWriter",
    "connection_token",
    "keeps_alive",

    # Routing
    "Router",
    "Route",

    # Status codes
    "HTTPStatus",

    # Errors
    "KnoxiusError",
    "ProtocolError",
    "MalformedRequestLine",
    "MalformedHeaderLine",
    "MalformedQueryString",
    "InvalidContentLength",
    "LineTooLong",
    "HeadersTooLarge",
    "MalformedAuthorization",
    "PayloadTooLarge",
    "ClientDisconnected",
    "DoubleResponse",
    "TransportError",
    "ConnectionClosed",
    "ReadTimeout",
]
