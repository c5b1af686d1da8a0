"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the lines coming off a ``LineReader`` into an immutable ``Request``.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ┌─ REQUEST LINE ─────────────────────────────────────────────────┐ │
    │  │                                                                 │ │
    │  │    GET /sprint/42?expand=stories HTTP/1.1\r\n                   │ │
    │  │    ─┬─ ──────────────┬────────── ────┬───                       │ │
    │  │     │                │               │                          │ │
    │  │   Method          Target          Version                       │ │
    │  │                      │                                          │ │
    │  │          ┌───────────┴──────────┐                               │ │
    │  │          │                      │                               │ │
    │  │         url                query_raw                            │ │
    │  │      /sprint/42          expand=stories                         │ │
    │  │                                                                 │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ HEADERS ──────────────────────────────────────────────────────┐ │
    │  │    Host: localhost:8080\r\n                                     │ │
    │  │    Cookie: session=ab12; theme=dark\r\n   ──► cookies           │ │
    │  │    Connection: keep-alive\r\n                                   │ │
    │  │    \r\n                              ◄── empty line = done     │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ BODY (POST/PUT only, see body.py) ────────────────────────────┐ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PARSING RULES
=============================================================================

1. Request line splits on single spaces into exactly three tokens.
2. Unknown verbs are not rejected here. They map to TRACE and the session
   answers 405.
3. The target is percent-decoded first, then cut at the first ``?``.
4. Headers keep the name's case as received; a repeated name overwrites the
   earlier value.
5. A missing Cookie header just means no cookies.

=============================================================================
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Tuple
from urllib.parse import unquote

from .errors import (
    HeadersTooLarge,
    MalformedAuthorization,
    MalformedHeaderLine,
    MalformedQueryString,
    MalformedRequestLine,
)

if TYPE_CHECKING:
    from ..core.line_reader import LineReader


logger = logging.getLogger(__name__)

MAX_HEADER_SIZE = 256 * 1024


class HTTPMethod(Enum):
    """
    Request methods the engine distinguishes.

    Anything else a client sends is treated as TRACE, which the session
    answers with 405 Method Not Allowed.
    """
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    HEAD = "HEAD"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def from_token(cls, token: str) -> "HTTPMethod":
        """Map a request-line verb (any case) to a member, TRACE if unknown."""
        try:
            return cls(token.upper())
        except ValueError:
            return cls.TRACE

    @property
    def has_body(self) -> bool:
        """POST and PUT are the only methods whose body we read."""
        return self in (HTTPMethod.POST, HTTPMethod.PUT)


@dataclass(frozen=True)
class Request:
    """
    A parsed HTTP request. Built once per request, never mutated.

    Attributes:
        method:       HTTPMethod member.
        url:          Percent-decoded path, never contains a query string.
        query_raw:    Text after the first ``?`` (undecoded pairs), "" if none.
        http_version: Version token exactly as sent, e.g. "HTTP/1.1".
        headers:      Header name → value, names in the case received.
        cookies:      Cookie name → value from the Cookie header.
        body:         Request body text, "" when no body was read.
    """

    method: HTTPMethod
    url: str
    http_version: str
    query_raw: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Look up a header value.

        Exact-name match first; falls back to a case-insensitive scan because
        clients do not agree on header capitalization.
        """
        value = _lookup(self.headers, name)
        return default if value is None else value

    @property
    def connection(self) -> str:
        """The declared Connection header, "" if absent."""
        return (self.get_header("Connection") or "").strip()

    def query_params(self) -> Dict[str, str]:
        """Decoded query parameters. See ``parse_query``."""
        return parse_query(self.query_raw)

    def with_body(self, body: str) -> "Request":
        """Copy of this request carrying ``body``."""
        return replace(self, body=body)


class RequestParser:
    """
    Reads a request line and header block from a ``LineReader``.

    Usage:

        parser = RequestParser(reader)
        request = parser.parse(reader.read_line(idle_timeout))

    The caller reads the request line itself, so it can apply the idle
    keep-alive deadline to it, and hands it to ``parse()``.

    Args:
        reader: The connection's line reader.
        max_header_size: Largest header block accepted, counting each line
                         with its CRLF.
    """

    def __init__(self, reader: "LineReader", max_header_size: int = MAX_HEADER_SIZE):
        self.reader = reader
        self.max_header_size = max_header_size

    def parse(self, request_line: str) -> Request:
        """
        Parse a request whose first line has already been read.

        Args:
            request_line: Line without terminator.

        Returns:
            Request with an empty body.

        Raises:
            MalformedRequestLine: Not exactly three space-separated tokens.
            MalformedHeaderLine: A header line without ``:``.
            HeadersTooLarge: The header block is over ``max_header_size``.
        """
        method, url, query_raw, version = self.parse_request_line(request_line)
        headers = self.read_headers()
        cookie_header = _lookup(headers, "Cookie")
        cookies = parse_cookies(cookie_header) if cookie_header is not None else {}

        return Request(
            method=method,
            url=url,
            query_raw=query_raw,
            http_version=version,
            headers=headers,
            cookies=cookies,
        )

    @staticmethod
    def parse_request_line(line: str) -> Tuple[HTTPMethod, str, str, str]:
        """
        Split ``METHOD SP target SP version``.

        Returns:
            (method, url, query_raw, version)
        """
        tokens = line.split(" ")
        if len(tokens) != 3:
            raise MalformedRequestLine(line)

        verb, target, version = tokens
        method = HTTPMethod.from_token(verb)

        # Decoded before the split, so an escaped %3F also ends the path.
        target = unquote(target)
        url, _, query_raw = target.partition("?")

        return method, url, query_raw, version

    def read_headers(self) -> Dict[str, str]:
        """Read ``Name: value`` lines up to the first blank line."""
        headers: Dict[str, str] = {}
        consumed = 0
        while True:
            line = self.reader.read_line()
            if not line.strip():
                return headers

            consumed += len(line) + 2
            if consumed > self.max_header_size:
                raise HeadersTooLarge(self.max_header_size)

            name, separator, value = line.partition(":")
            if not separator:
                raise MalformedHeaderLine(line)
            headers[name] = value.strip()


# =============================================================================
# HELPERS
# =============================================================================

def _lookup(headers: Dict[str, str], name: str) -> Optional[str]:
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def parse_cookies(header: str) -> Dict[str, str]:
    """
    Parse a Cookie header value.

        "x=1; y=2"  →  {"x": "1", "y": "2"}

    Segments are split on ``;`` and trimmed. A segment splits on its first
    ``=``, so base64 values with padding survive. Segments without ``=`` are
    skipped.
    """
    cookies: Dict[str, str] = {}
    for segment in header.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        name, separator, value = segment.partition("=")
        if not separator:
            logger.debug(f"Ignoring cookie segment without '=': {segment!r}")
            continue
        cookies[name.strip()] = value.strip()
    return cookies


def parse_query(query_raw: str) -> Dict[str, str]:
    """
    Decode a raw query string.

        "a=1&b=hello%20world"  →  {"a": "1", "b": "hello world"}

    The key is everything before the first ``=`` and the value everything
    after it, both percent-decoded. A later duplicate key wins.

    Raises:
        MalformedQueryString: A segment has no ``=``.
    """
    params: Dict[str, str] = {}
    if not query_raw:
        return params

    for segment in query_raw.split("&"):
        key, separator, value = segment.partition("=")
        if not separator:
            raise MalformedQueryString(segment)
        params[unquote(key)] = unquote(value)
    return params


def decode_basic_auth(request: Request) -> Optional[str]:
    """
    Decode ``Authorization: Basic <base64>`` into ``"username:password"``.

    The engine checks nothing; handlers validate the credentials.

    Returns:
        The decoded string, or None if there is no Basic Authorization header.

    Raises:
        MalformedAuthorization: Payload is not valid base64 or UTF-8.
    """
    header = request.get_header("Authorization")
    if not header:
        return None

    scheme, _, payload = header.strip().partition(" ")
    if scheme.lower() != "basic":
        return None

    try:
        return base64.b64decode(payload.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MalformedAuthorization(f"Invalid Basic credentials: {e}") from e


def basic_credentials(request: Request) -> Optional[Tuple[str, str]]:
    """``decode_basic_auth`` split into (username, password)."""
    decoded = decode_basic_auth(request)
    if decoded is None:
        return None
    username, _, password = decoded.partition(":")
    return username, password
