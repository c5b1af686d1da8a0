"""
=============================================================================
ENGINE ERRORS
=============================================================================

Every failure the engine raises on purpose lives here, so the session loop
can decide how to recover by looking at the exception type alone.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ERROR TAXONOMY                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   KnoxiusError                                                      │
    │   ├── ProtocolError          bad bytes from the client              │
    │   │   ├── MalformedRequestLine                                      │
    │   │   ├── MalformedHeaderLine                                       │
    │   │   ├── MalformedQueryString                                      │
    │   │   ├── InvalidContentLength                                      │
    │   │   ├── LineTooLong                                               │
    │   │   ├── HeadersTooLarge                                           │
    │   │   └── MalformedAuthorization                                    │
    │   ├── PayloadTooLarge        body over the configured limit         │
    │   ├── ClientDisconnected     peer went away mid-body                │
    │   ├── DoubleResponse         handler wrote twice                    │
    │   └── TransportError         stream is unusable                     │
    │       ├── ConnectionClosed                                          │
    │       └── ReadTimeout                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

RECOVERY
─────────

    TransportError (and any OSError)  → log, close, write nothing
    everything else                   → best-effort 500, then close

=============================================================================
"""


class KnoxiusError(Exception):
    """Base class for all engine errors."""


# =============================================================================
# PROTOCOL ERRORS - the client sent something we can't parse
# =============================================================================

class ProtocolError(KnoxiusError):
    """The request bytes do not form a request we understand."""


class MalformedRequestLine(ProtocolError):
    """Request line is not exactly ``METHOD SP target SP version``."""

    def __init__(self, line: str):
        super().__init__(f"Invalid HTTP request line: {line!r}")
        self.line = line


class MalformedHeaderLine(ProtocolError):
    """Header line without a ``:`` separator."""

    def __init__(self, line: str):
        super().__init__(f"Invalid HTTP header: {line!r}")
        self.line = line


class MalformedQueryString(ProtocolError):
    """Query segment without ``=``."""

    def __init__(self, segment: str):
        super().__init__(f"Invalid query parameter: {segment!r}")
        self.segment = segment


class InvalidContentLength(ProtocolError):
    """Content-Length is not a non-negative integer."""

    def __init__(self, value: str):
        super().__init__(f"Invalid Content-Length: {value!r}")
        self.value = value


class LineTooLong(ProtocolError):
    """A request or header line exceeded the configured maximum."""

    def __init__(self, limit: int):
        super().__init__(f"Line exceeds {limit} bytes")
        self.limit = limit


class HeadersTooLarge(ProtocolError):
    """The header block as a whole exceeded the configured maximum."""

    def __init__(self, limit: int):
        super().__init__(f"Request headers exceed {limit} bytes")
        self.limit = limit


class MalformedAuthorization(ProtocolError):
    """Basic credentials that are not valid base64 / UTF-8."""


# =============================================================================
# REQUEST-LOCAL FAILURES
# =============================================================================

class PayloadTooLarge(KnoxiusError):
    """Declared body size is over the limit. Raised before reading the body."""

    def __init__(self, content_length: int, limit: int):
        super().__init__(f"Content-Length ({content_length}) too big! Limit is {limit}")
        self.content_length = content_length
        self.limit = limit


class ClientDisconnected(KnoxiusError):
    """The stream ended while body bytes were still outstanding."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Client disconnected while reading body "
            f"({received} of {expected} bytes received)"
        )
        self.expected = expected
        self.received = received


class DoubleResponse(KnoxiusError):
    """A handler tried to finalize a second response for the same request."""

    def __init__(self):
        super().__init__("Cannot send new response after response has been sent.")


# =============================================================================
# TRANSPORT ERRORS - the stream itself is gone
# =============================================================================

class TransportError(KnoxiusError):
    """The socket can no longer be used. No response is attempted."""


class ConnectionClosed(TransportError):
    """Peer closed the connection while we were waiting for bytes."""

    def __init__(self, partial: bytes = b""):
        if partial:
            message = f"Connection closed mid-line after {len(partial)} bytes"
        else:
            message = "Connection closed by peer"
        super().__init__(message)
        self.partial = partial


class ReadTimeout(TransportError):
    """No complete line (or body chunk) arrived before the deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Read timed out after {timeout:.1f}s")
        self.timeout = timeout
