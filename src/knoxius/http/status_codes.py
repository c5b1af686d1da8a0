"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server actually emits, with their reason phrases.

Responses are written with the status line ``HTTP/1.1 <code> <phrase>``.
Handlers may pass either an ``HTTPStatus`` member or a literal token such as
``"418 I'm a teapot"``; ``status_token()`` normalizes both.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK            - write_success()                       │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 302 Found         - write_redirect()                      │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request   - handler input errors                  │
    │        │ 401 Unauthorized  - write_auth_required()                 │
    │        │ 404 Not Found     - router miss                           │
    │        │ 405 Method Not Allowed - unsupported verb / route method  │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Server Error - failure recovery              │
    │        │ 502 Bad Gateway           - upstream web app failed       │
    │        │ 503 Service Unavailable   - worker pool full              │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum
from typing import Union


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain ints:

        >>> HTTPStatus.OK == 200
        True
        >>> str(HTTPStatus.NOT_FOUND)
        '404 Not Found'
    """

    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    MOVED_PERMANENTLY = 301
    FOUND = 302

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503

    @property
    def phrase(self) -> str:
        """Reason phrase used after the code in the status line."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    def __str__(self) -> str:
        return f"{self.value} {self.phrase}"


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
}


def status_token(status: Union[HTTPStatus, str]) -> str:
    """
    Turn a status into the token written after ``HTTP/1.1``.

    Args:
        status: ``HTTPStatus`` member or an already formatted token.

    Returns:
        e.g. ``"200 OK"``
    """
    if isinstance(status, HTTPStatus):
        return str(status)
    return status.strip()


def is_success_token(token: str) -> bool:
    """True for 2xx tokens. Used to pick the response log level."""
    return token.startswith("2")
