"""Tests for the line-oriented request reader, using local socket pairs."""

import logging
import socket

import pytest

from http_request import MAX_LINE_BYTES, RequestError, is_upload, read_request


def _pair(payload: bytes, close_write: bool = True):
    server_side, client_side = socket.socketpair()
    server_side.settimeout(2.0)
    client_side.sendall(payload)
    if close_write:
        client_side.shutdown(socket.SHUT_WR)
    return server_side, client_side


def test_reads_request_line_and_headers() -> None:
    server_side, client_side = _pair(
        b"GET /index HTTP/1.1\r\nHost: x\r\nCookie: session-id=abc\r\n\r\n"
    )
    with server_side, client_side:
        request = read_request(server_side)

    assert request["method"] == "GET"
    assert request["path"] == "/index"
    assert request["version"] == "HTTP/1.1"
    assert request["lines"] == ["Host: x", "Cookie: session-id=abc"]
    assert request["headers"]["host"] == "x"
    assert request["complete"] is True
    assert request["body"] is None


def test_get_body_is_not_read() -> None:
    server_side, client_side = _pair(b"GET / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["body"] is None


def test_upload_body_read_to_end_of_stream() -> None:
    server_side, client_side = _pair(b"POST /upload HTTP/1.1\r\nHost: x\r\n\r\nhello\nworld")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["body"] == b"hello\nworld"


def test_upload_body_without_length_stops_when_input_goes_idle() -> None:
    server_side, client_side = _pair(
        b"POST /upload HTTP/1.1\r\nHost: x\r\n\r\nhello", close_write=False
    )
    with server_side, client_side:
        request = read_request(server_side, drain_timeout=0.1)
        assert server_side.gettimeout() == 2.0

    assert request["body"] == b"hello"


def test_upload_body_honors_content_length() -> None:
    server_side, client_side = _pair(
        b"POST /upload HTTP/1.1\r\nContent-Length: 3\r\n\r\nabcdef", close_write=False
    )
    with server_side, client_side:
        request = read_request(server_side)

    assert request["body"] == b"abc"


def test_invalid_content_length_falls_back_to_draining() -> None:
    server_side, client_side = _pair(
        b"POST /upload HTTP/1.1\r\nContent-Length: lots\r\n\r\nabc"
    )
    with server_side, client_side:
        request = read_request(server_side)

    assert request["body"] == b"abc"


def test_empty_upload_body() -> None:
    server_side, client_side = _pair(b"POST /upload HTTP/1.1\r\nHost: x\r\n\r\n")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["body"] == b""


def test_stream_ending_before_blank_line() -> None:
    server_side, client_side = _pair(b"POST /upload HTTP/1.1\r\nHost: x\r\n")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["complete"] is False
    assert request["body"] is None
    assert request["lines"] == ["Host: x"]


def test_bare_newlines_are_accepted() -> None:
    server_side, client_side = _pair(b"GET / HTTP/1.1\nHost: x\n\n")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["lines"] == ["Host: x"]
    assert request["complete"] is True


def test_malformed_request_line_is_lenient() -> None:
    server_side, client_side = _pair(b"BROKEN\r\n\r\n")
    with server_side, client_side:
        request = read_request(server_side)

    assert request["method"] == "BROKEN"
    assert request["path"] == ""
    assert request["version"] == ""


def test_nothing_sent_returns_none() -> None:
    server_side, client_side = _pair(b"")
    with server_side, client_side:
        assert read_request(server_side) is None


def test_overlong_line_is_rejected() -> None:
    payload = b"GET /" + b"a" * MAX_LINE_BYTES + b" HTTP/1.1\r\n\r\n"
    server_side, client_side = _pair(payload)
    with server_side, client_side:
        with pytest.raises(RequestError):
            read_request(server_side)


def test_is_upload() -> None:
    assert is_upload("POST", "/upload")
    assert is_upload("POST", "/upload?name=x")
    assert not is_upload("GET", "/upload")
    assert not is_upload("POST", "/")
    assert not is_upload("POST", "/upload/more")


def test_line_at_the_size_limit_is_accepted() -> None:
    header = b"X-Long: " + b"a" * (MAX_LINE_BYTES - len(b"X-Long: "))
    server_side, client_side = _pair(b"GET / HTTP/1.1\r\n" + header + b"\r\n\r\n")
    with server_side, client_side:
        request = read_request(server_side)

    assert len(request["lines"][0]) == MAX_LINE_BYTES
    assert request["complete"] is True


def test_line_one_byte_over_the_limit_is_rejected() -> None:
    header = b"X-Long: " + b"a" * (MAX_LINE_BYTES + 1 - len(b"X-Long: "))
    server_side, client_side = _pair(b"GET / HTTP/1.1\r\n" + header + b"\r\n\r\n")
    with server_side, client_side:
        with pytest.raises(RequestError):
            read_request(server_side)


def test_every_line_read_is_logged(caplog) -> None:
    caplog.set_level(logging.INFO, logger="SessionServer")
    server_side, client_side = _pair(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
    with server_side, client_side:
        read_request(server_side)

    received = [record.getMessage() for record in caplog.records if record.getMessage().startswith("Received:")]
    assert received == ["Received: GET / HTTP/1.1", "Received: Host: x", "Received: "]
