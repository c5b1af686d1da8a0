"""
=============================================================================
LINE READER
=============================================================================

Buffered, deadline-bounded reads from a blocking client socket.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP keeps bytes in order but says nothing about where one recv() ends and
the next begins. A request line can arrive split across packets:

    First recv():  b"GET /sprint/4"
    Second recv(): b"2 HTTP/1.1\r\nHost: loc"
    Third recv():  b"alhost\r\n\r\n"

So we keep a buffer and only hand out whole lines:

    ┌─────────────────────────────────────────────────────────────────┐
    │                      read_line() flow                            │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   buffer has b"\n"? ──yes──► cut line, drop every \r, return     │
    │        │                                                         │
    │        no                                                        │
    │        ▼                                                         │
    │   deadline passed? ──yes──► ReadTimeout                          │
    │        │                                                         │
    │        no                                                        │
    │        ▼                                                         │
    │   recv(remaining time) ──b""──► ConnectionClosed                 │
    │        │                                                         │
    │        └──► append to buffer, loop                               │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Blocking recv() with a timeout replaces polling for "no data yet". A
half-open connection costs one deadline, never a spinning thread.

Header bytes are decoded as ISO-8859-1: one byte becomes one character, and
nothing the client sends can fail to decode.

=============================================================================
"""

import socket
import time
from typing import Optional

from ..http.errors import ConnectionClosed, LineTooLong, ReadTimeout


class LineReader:
    """
    Reads CRLF/LF terminated lines and raw byte chunks from a socket.

    Bytes read past the end of a line stay buffered, so the body reader
    sees them first.

    Attributes:
        sock: Connected, blocking socket.
        buffer_size: Maximum bytes per recv() call.
        timeout: Default per-call deadline in seconds.
        max_line_size: Longest line accepted before ``LineTooLong``.
    """

    def __init__(
        self,
        sock: socket.socket,
        buffer_size: int = 4096,
        timeout: float = 30.0,
        max_line_size: int = 64 * 1024,
    ):
        self.sock = sock
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.max_line_size = max_line_size
        self._buffer = b""

    @property
    def has_buffered_data(self) -> bool:
        """True if bytes were received but not handed out yet."""
        return bool(self._buffer)

    def read_line(self, timeout: Optional[float] = None) -> str:
        """
        Read one line, excluding its terminator.

        Args:
            timeout: Deadline for the whole line. Defaults to ``self.timeout``.

        Returns:
            The line with all carriage returns removed.

        Raises:
            ReadTimeout: The line did not complete in time.
            ConnectionClosed: The peer closed the stream first.
            LineTooLong: More than ``max_line_size`` bytes without a newline.
        """
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = self._buffer[:newline]
                self._buffer = self._buffer[newline + 1:]
                return line.replace(b"\r", b"").decode("iso-8859-1")

            if len(self._buffer) > self.max_line_size:
                raise LineTooLong(self.max_line_size)

            chunk = self._recv(self.buffer_size, deadline, timeout)
            if not chunk:
                raise ConnectionClosed(self._buffer)
            self._buffer += chunk

    def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        """
        Read up to ``max_bytes`` bytes, buffered bytes first.

        Returns:
            Between 1 and ``max_bytes`` bytes, or ``b""`` once the peer has
            closed its side of the connection.

        Raises:
            ReadTimeout: Nothing arrived before the deadline.
        """
        if max_bytes <= 0:
            return b""

        if self._buffer:
            data = self._buffer[:max_bytes]
            self._buffer = self._buffer[max_bytes:]
            return data

        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        return self._recv(min(max_bytes, self.buffer_size), deadline, timeout)

    def _recv(self, size: int, deadline: float, timeout: float) -> bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ReadTimeout(timeout)

        self.sock.settimeout(remaining)
        try:
            return self.sock.recv(size)
        except socket.timeout:
            raise ReadTimeout(timeout) from None
