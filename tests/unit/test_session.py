"""
Unit tests for the connection session: keep-alive, dispatch and recovery.
"""

import dataclasses
import logging
from unittest import mock

from knoxius.core import Session
from knoxius.core.session import ALLOWED_METHODS, SessionState

from conftest import is_closed, read_response


KEEP_ALIVE_GET = b"GET /a HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"


def ok(session: Session) -> None:
    session.write_success('{"ok": true}')


class TestPersistence:

    def test_keep_alive_serves_second_request(self, run_session):
        runner = run_session(ok)
        buffer = bytearray()

        runner.send(KEEP_ALIVE_GET)
        first = read_response(runner.client, buffer)
        runner.send(b"GET /b HTTP/1.1\r\nConnection: close\r\n\r\n")
        second = read_response(runner.client, buffer)

        assert first.headers["Connection"] == "keep-alive"
        assert second.headers["Connection"] == "close"
        assert is_closed(runner.client)
        assert runner.join()
        assert runner.session.requests_handled == 2

    def test_pipelined_requests(self, run_session):
        runner = run_session(ok)
        buffer = bytearray()

        runner.send(KEEP_ALIVE_GET + KEEP_ALIVE_GET)

        assert read_response(runner.client, buffer).status_code == 200
        assert read_response(runner.client, buffer).status_code == 200

    def test_missing_connection_header_closes(self, run_session):
        runner = run_session(ok)
        runner.send(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")

        response = read_response(runner.client)
        assert response.headers["Connection"] == "close"
        assert is_closed(runner.client)
        assert runner.join()

    def test_idle_keep_alive_times_out_quietly(self, run_session):
        logger = mock.Mock(spec=logging.Logger)
        runner = run_session(ok, logger=logger)

        runner.send(KEEP_ALIVE_GET)
        read_response(runner.client)

        # keep_alive_timeout is 1s in the test config
        assert is_closed(runner.client, timeout=4.0)
        assert runner.join()
        logger.error.assert_not_called()
        logger.exception.assert_not_called()

    def test_client_closing_idle_connection(self, run_session):
        logger = mock.Mock(spec=logging.Logger)
        runner = run_session(ok, logger=logger)

        runner.client.close()

        assert runner.join()
        assert runner.session.state is SessionState.CLOSED
        logger.error.assert_not_called()


class TestDispatch:

    def test_options_never_reaches_handler(self, run_session):
        handler = mock.Mock()
        runner = run_session(handler)
        runner.send(b"OPTIONS /anything HTTP/1.1\r\n\r\n")

        response = read_response(runner.client)
        assert response.status == "200 OK"
        assert response.headers["Allow"] == ALLOWED_METHODS
        handler.assert_not_called()

    def test_unknown_method_gets_405(self, run_session):
        handler = mock.Mock()
        runner = run_session(handler)
        runner.send(b"PATCH /x HTTP/1.1\r\n\r\n")

        response = read_response(runner.client)
        assert response.status == "405 Method Not Allowed"
        assert response.body == b""
        assert "Content-Length" not in response.headers
        handler.assert_not_called()

    def test_post_body_available_to_handler(self, run_session, sample_post_request):
        def echo(session):
            session.write_success(session.request.body)

        runner = run_session(echo)
        runner.send(sample_post_request)

        assert read_response(runner.client).body == b'{"name": "Sprint 7", "goal": "ship it"}'

    def test_get_body_not_read(self, run_session):
        seen = []

        def handler(session):
            seen.append(session.request.body)
            session.write_success()

        runner = run_session(handler)
        runner.send(b"GET / HTTP/1.1\r\nContent-Length: 4\r\n\r\n")

        read_response(runner.client)
        assert seen == [""]

    def test_handler_sees_query_and_cookies(self, run_session, sample_get_request):
        seen = {}

        def handler(session):
            seen["query"] = session.query_params()
            seen["cookies"] = session.request.cookies
            session.response.set_header("X-Trace", "1")
            session.write_success()

        runner = run_session(handler)
        runner.send(sample_get_request)

        response = read_response(runner.client)
        assert response.headers["X-Trace"] == "1"
        assert seen["query"] == {"expand": "stories", "page": "2"}
        assert seen["cookies"] == {"session": "ab12", "theme": "dark"}

    def test_handler_without_response_logs_warning(self, run_session):
        logger = mock.Mock(spec=logging.Logger)
        runner = run_session(lambda session: None, logger=logger)
        runner.send(b"GET /silent HTTP/1.1\r\n\r\n")

        assert is_closed(runner.client)
        assert runner.join()
        assert logger.warning.called


class TestRecovery:

    def test_handler_exception_gives_500_and_close(self, run_session):
        def broken(session):
            raise RuntimeError("boom")

        logger = mock.Mock(spec=logging.Logger)
        runner = run_session(broken, logger=logger)
        runner.send(KEEP_ALIVE_GET)

        response = read_response(runner.client)
        assert response.status == "500 Internal Server Error"
        assert response.headers["Connection"] == "close"
        assert b"fiddlesticks" in response.body
        assert is_closed(runner.client)
        assert runner.join()
        assert logger.exception.called

    def test_malformed_request_line_gives_500(self, run_session):
        runner = run_session(ok)
        runner.send(b"GARBAGE\r\n\r\n")

        assert read_response(runner.client).status_code == 500
        assert is_closed(runner.client)

    def test_malformed_header_gives_500(self, run_session):
        runner = run_session(ok)
        runner.send(b"GET / HTTP/1.1\r\nNoColon\r\n\r\n")

        assert read_response(runner.client).status_code == 500

    def test_oversized_body_rejected(self, run_session):
        handler = mock.Mock()
        runner = run_session(handler)
        runner.send(
            b"POST /upload HTTP/1.1\r\nConnection: keep-alive\r\n"
            b"Content-Length: 99999999\r\n\r\n"
        )

        response = read_response(runner.client)
        assert response.status_code == 500
        assert response.headers["Connection"] == "close"
        handler.assert_not_called()

    def test_oversized_header_block_rejected(self, run_session, config):
        handler = mock.Mock()
        runner = run_session(handler, config=dataclasses.replace(config, max_header_size=2048))
        filler = b"".join(f"X-Filler-{i}: {'v' * 200}\r\n".encode() for i in range(50))
        runner.send(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n" + filler + b"\r\n")

        response = read_response(runner.client)
        assert response.status_code == 500
        assert response.headers["Connection"] == "close"
        handler.assert_not_called()

    def test_invalid_content_length_gives_500(self, run_session):
        runner = run_session(ok)
        runner.send(b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n")

        assert read_response(runner.client).status_code == 500

    def test_double_write_keeps_first_response(self, run_session):
        def twice(session):
            session.write_success('{"n": 1}')
            session.write_success('{"n": 2}')

        runner = run_session(twice)
        runner.send(KEEP_ALIVE_GET)

        response = read_response(runner.client)
        assert response.body == b'{"n": 1}'
        assert is_closed(runner.client)

    def test_client_disconnect_mid_headers_writes_nothing(self, run_session):
        logger = mock.Mock(spec=logging.Logger)
        runner = run_session(ok, logger=logger)

        runner.send(b"GET /partial HTTP/1.1\r\nHost: loc")
        runner.client.shutdown(2)  # SHUT_RDWR

        assert runner.join()
        assert logger.error.called
        logger.exception.assert_not_called()

    def test_failing_connection_does_not_affect_another(self, run_session):
        broken = run_session(ok)
        healthy = run_session(ok)

        broken.send(b"GET /partial HTTP/1.1\r\nHo")
        broken.client.close()
        healthy.send(b"GET / HTTP/1.1\r\n\r\n")

        assert read_response(healthy.client).status_code == 200
        assert broken.join()


class TestHandlerAPI:

    def test_decode_authentication_header(self, run_session):
        seen = []

        def handler(session):
            seen.append(session.decode_authentication_header())
            session.write_success()

        runner = run_session(handler)
        runner.send(b"GET / HTTP/1.1\r\nAuthorization: Basic dXNlcjpwYXNz\r\n\r\n")

        read_response(runner.client)
        assert seen == ["user:pass"]

    def test_write_redirect(self, run_session):
        runner = run_session(lambda session: session.write_redirect("/home"))
        runner.send(b"GET / HTTP/1.1\r\n\r\n")

        response = read_response(runner.client)
        assert response.status == "302 Found"
        assert response.headers["Location"] == "/home"

    def test_close_is_idempotent(self, socket_pair):
        server_side, _ = socket_pair
        session = Session(server_side, ("127.0.0.1", 1), ok)

        session.close()
        session.close()

        assert session.state is SessionState.CLOSED
