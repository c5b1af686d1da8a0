"""
Unit tests for the buffered line reader.
"""

import pytest

from knoxius.core import LineReader
from knoxius.http.errors import ConnectionClosed, LineTooLong, ReadTimeout

from conftest import reader_for


class TestReadLine:
    """Tests for LineReader.read_line()."""

    def test_crlf_terminated_lines(self):
        reader = reader_for(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")

        assert reader.read_line() == "GET / HTTP/1.1"
        assert reader.read_line() == "Host: x"
        assert reader.read_line() == ""

    def test_bare_lf_terminated_lines(self):
        reader = reader_for(b"first\nsecond\n")

        assert reader.read_line() == "first"
        assert reader.read_line() == "second"

    def test_carriage_returns_discarded_everywhere(self):
        reader = reader_for(b"a\rb\r\r\n")

        assert reader.read_line() == "ab"

    def test_line_split_across_packets(self, socket_pair):
        server_side, client_side = socket_pair
        reader = LineReader(server_side, timeout=2.0)

        client_side.sendall(b"GET /sprint/4")
        client_side.sendall(b"2 HTTP/1.1\r\n")

        assert reader.read_line() == "GET /sprint/42 HTTP/1.1"

    def test_latin1_bytes_never_fail(self):
        reader = reader_for(b"X-Name: caf\xe9\r\n")

        assert reader.read_line() == "X-Name: café"

    def test_eof_before_any_byte(self):
        reader = reader_for(b"")

        with pytest.raises(ConnectionClosed) as exc_info:
            reader.read_line()
        assert exc_info.value.partial == b""

    def test_eof_mid_line_keeps_partial(self):
        reader = reader_for(b"GET /incomp")

        with pytest.raises(ConnectionClosed) as exc_info:
            reader.read_line()
        assert exc_info.value.partial == b"GET /incomp"

    def test_silent_peer_times_out(self, socket_pair):
        server_side, _client_side = socket_pair
        reader = LineReader(server_side)

        with pytest.raises(ReadTimeout):
            reader.read_line(timeout=0.2)

    def test_line_too_long(self):
        reader = reader_for(b"A" * 5000, buffer_size=1024, max_line_size=2048)

        with pytest.raises(LineTooLong):
            reader.read_line()


class TestRead:
    """Tests for LineReader.read()."""

    def test_buffered_bytes_come_first(self):
        reader = reader_for(b"Header: v\r\n\r\nbody-bytes")

        reader.read_line()
        reader.read_line()
        assert reader.has_buffered_data
        assert reader.read(4) == b"body"
        assert reader.read(100) == b"-bytes"

    def test_eof_returns_empty(self):
        reader = reader_for(b"")

        assert reader.read(10) == b""

    def test_zero_bytes_requested(self, socket_pair):
        server_side, _ = socket_pair
        reader = LineReader(server_side)

        assert reader.read(0) == b""

    def test_read_respects_buffer_size(self, socket_pair):
        server_side, client_side = socket_pair
        reader = LineReader(server_side, buffer_size=1024, timeout=2.0)
        client_side.sendall(b"x" * 3000)

        assert len(reader.read(3000)) <= 1024

    def test_read_timeout(self, socket_pair):
        server_side, _ = socket_pair
        reader = LineReader(server_side)

        with pytest.raises(ReadTimeout):
            reader.read(10, timeout=0.2)
