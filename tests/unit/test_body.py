"""
Unit tests for the request body reader.
"""

import pytest

from knoxius.http.body import BodyReader, content_length
from knoxius.http.errors import ClientDisconnected, InvalidContentLength, PayloadTooLarge
from knoxius.http.request import HTTPMethod, Request

from conftest import reader_for


def post(headers=None) -> Request:
    return Request(HTTPMethod.POST, "/echo", "HTTP/1.1", headers=headers or {})


class TestContentLength:

    def test_absent(self):
        assert content_length(post()) is None

    def test_value_trimmed(self):
        assert content_length(post({"Content-Length": " 12 "})) == 12

    @pytest.mark.parametrize("value", ["abc", "-1", "1.5", ""])
    def test_invalid(self, value):
        with pytest.raises(InvalidContentLength):
            content_length(post({"Content-Length": value}))


class TestBodyReader:

    def test_no_content_length_reads_nothing(self):
        reader = reader_for(b"untouched")

        assert BodyReader(reader).read(post()) == ""
        assert reader.read(100) == b"untouched"

    def test_reads_exact_length(self):
        reader = reader_for(b"hello world NEXT")
        body = BodyReader(reader).read(post({"Content-Length": "11"}))

        assert body == "hello world"
        assert reader.read(100) == b" NEXT"

    def test_reads_in_bounded_chunks(self):
        payload = b"x" * 10000
        reader = reader_for(payload, buffer_size=1024)
        body = BodyReader(reader, chunk_size=1024).read(post({"Content-Length": "10000"}))

        assert len(body) == 10000

    def test_utf8_decoded(self):
        data = "héllo ✓".encode("utf-8")
        reader = reader_for(data)

        assert BodyReader(reader).read(post({"Content-Length": str(len(data))})) == "héllo ✓"

    def test_invalid_utf8_replaced(self):
        reader = reader_for(b"\xff\xfe")

        assert BodyReader(reader).read(post({"Content-Length": "2"})) == "��"

    def test_zero_length(self):
        assert BodyReader(reader_for(b"")).read(post({"Content-Length": "0"})) == ""

    def test_over_limit_rejected_before_reading(self):
        reader = reader_for(b"these bytes must stay unread")

        with pytest.raises(PayloadTooLarge) as exc_info:
            BodyReader(reader).read(post({"Content-Length": "10485761"}))

        assert exc_info.value.limit == 10485760
        assert not reader.has_buffered_data
        assert reader.read(100) == b"these bytes must stay unread"

    def test_at_limit_accepted(self):
        reader = reader_for(b"abcd")

        assert BodyReader(reader, max_size=4).read(post({"Content-Length": "4"})) == "abcd"

    def test_stream_ends_early(self):
        reader = reader_for(b"short")

        with pytest.raises(ClientDisconnected) as exc_info:
            BodyReader(reader).read(post({"Content-Length": "50"}))

        assert exc_info.value.expected == 50
        assert exc_info.value.received == 5
