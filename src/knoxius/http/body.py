"""
Body reader for POST and PUT requests.

Reads exactly Content-Length bytes in bounded chunks:

    Content-Length absent        → ""  (nothing read)
    Content-Length > max_size    → PayloadTooLarge, before touching the stream
    stream ends with bytes owed  → ClientDisconnected
    otherwise                    → bytes decoded as UTF-8
"""

import logging
from typing import TYPE_CHECKING, Optional

from .errors import ClientDisconnected, InvalidContentLength, PayloadTooLarge
from .request import Request

if TYPE_CHECKING:
    from ..core.line_reader import LineReader


logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 10 * 1024 * 1024  # 10 MiB
CHUNK_SIZE = 4096


def content_length(request: Request) -> Optional[int]:
    """
    Declared body length, or None if the header is absent.

    Raises:
        InvalidContentLength: Not a non-negative integer.
    """
    value = request.get_header("Content-Length")
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        raise InvalidContentLength(value)
    return int(value)


class BodyReader:
    """
    Reads a length-bounded request body from a ``LineReader``.

    Args:
        reader: The connection's line reader (it may already hold body bytes).
        max_size: Largest accepted Content-Length.
        chunk_size: Upper bound for a single read.
    """

    def __init__(
        self,
        reader: "LineReader",
        max_size: int = MAX_BODY_SIZE,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.reader = reader
        self.max_size = max_size
        self.chunk_size = chunk_size

    def read(self, request: Request) -> str:
        """Read the body declared by ``request`` and return it as text."""
        length = content_length(request)
        if length is None:
            return ""

        if length > self.max_size:
            raise PayloadTooLarge(length, self.max_size)

        chunks = []
        remaining = length
        while remaining > 0:
            chunk = self.reader.read(min(self.chunk_size, remaining))
            if not chunk:
                raise ClientDisconnected(expected=length, received=length - remaining)
            chunks.append(chunk)
            remaining -= len(chunk)

        logger.debug(f"Read {length} byte body")
        return b"".join(chunks).decode("utf-8", errors="replace")
