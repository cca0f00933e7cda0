"""
Tests for the PineProxy protocol reader.
"""

import io

import pytest

from pineproxy.core.models import Request, Response
from pineproxy.core.reader import (
    MAX_LINE,
    ProtocolError,
    apply_request_header,
    apply_request_line,
    origin_form,
    read_line,
    read_request,
    read_response,
    read_response_headers,
    read_response_line,
)


def _stream(*lines: str, terminator: str = "\r\n", body: bytes = b"") -> io.BytesIO:
    return io.BytesIO("".join(line + terminator for line in lines).encode("iso-8859-1") + body)


# ── Line Reading ─────────────────────────────────────────────────────────────


class TestReadLine:
    def test_strips_crlf(self):
        assert read_line(io.BytesIO(b"Host: a\r\n")) == "Host: a"

    def test_strips_bare_lf(self):
        assert read_line(io.BytesIO(b"Host: a\n")) == "Host: a"

    def test_last_line_without_terminator(self):
        assert read_line(io.BytesIO(b"Host: a")) == "Host: a"

    def test_eof_returns_none(self):
        assert read_line(io.BytesIO(b"")) is None

    def test_blank_line(self):
        assert read_line(io.BytesIO(b"\r\n")) == ""

    def test_too_long(self):
        with pytest.raises(ProtocolError):
            read_line(io.BytesIO(b"x" * (MAX_LINE + 10) + b"\n"))

    def test_high_bytes_survive(self):
        line = read_line(io.BytesIO(b"X-Name: caf\xe9\n"))
        assert line.encode("iso-8859-1") == b"X-Name: caf\xe9"


# ── Request Line ─────────────────────────────────────────────────────────────


class TestOriginForm:
    def test_absolute_with_query(self):
        assert origin_form("http://example.com/path?x=1") == "/path?x=1"

    def test_absolute_with_port(self):
        assert origin_form("http://example.com:8080/a/b") == "/a/b"

    def test_absolute_without_path(self):
        assert origin_form("http://example.com") == "/"

    def test_origin_form_untouched(self):
        assert origin_form("/index.html?q=2") == "/index.html?q=2"


class TestRequestLine:
    def test_absolute_uri_normalized(self):
        req = Request()
        apply_request_line(req, "GET http://example.com/path?x=1 HTTP/1.1")
        assert req.verb == "GET"
        assert req.target == "/path?x=1"
        assert req.header_lines == ["GET /path?x=1 HTTP/1.0"]

    def test_version_downgraded(self):
        req = Request()
        apply_request_line(req, "POST /submit HTTP/1.1")
        assert req.header_lines == ["POST /submit HTTP/1.0"]

    def test_malformed_line_kept(self):
        req = Request()
        apply_request_line(req, "this is not http")
        assert req.verb is None
        assert req.target is None
        assert req.header_lines == ["this is not http"]


# ── Request Headers ──────────────────────────────────────────────────────────


class TestRequestHeaders:
    def _apply(self, line: str) -> Request:
        req = Request()
        apply_request_header(req, line)
        return req

    def test_host_default_port(self):
        req = self._apply("Host: example.com")
        assert req.host == "example.com"
        assert req.port == 80

    def test_host_with_port(self):
        req = self._apply("Host: example.com:8081")
        assert req.host == "example.com"
        assert req.port == 8081

    def test_host_case_insensitive(self):
        assert self._apply("host: example.com").host == "example.com"

    def test_content_length(self):
        req = self._apply("Content-Length: 42")
        assert req.declared_length == 42
        assert req.header_lines == ["Content-Length: 42"]

    def test_keep_alive_closed(self):
        assert self._apply("Connection: keep-alive").header_lines == ["Connection: close"]

    def test_any_connection_closed(self):
        assert self._apply("Connection: Upgrade").header_lines == ["Connection: close"]

    def test_proxy_connection_closed(self):
        assert self._apply("Proxy-Connection: Keep-Alive").header_lines == ["Connection: close"]

    def test_accept_encoding_identity(self):
        req = self._apply("Accept-Encoding: gzip, deflate, br")
        assert req.header_lines == ["Accept-Encoding: identity"]

    def test_other_headers_verbatim(self):
        assert self._apply("User-Agent: curl/8.0").header_lines == ["User-Agent: curl/8.0"]


class TestReadRequest:
    def test_full_request(self):
        req = read_request(_stream(
            "GET http://example.com/path?x=1 HTTP/1.1",
            "Host: example.com",
            "Connection: keep-alive",
            "Accept-Encoding: gzip",
            "",
        ))
        assert req.verb == "GET"
        assert req.host == "example.com"
        assert req.header_lines == [
            "GET /path?x=1 HTTP/1.0",
            "Host: example.com",
            "Connection: close",
            "Accept-Encoding: identity",
        ]

    def test_bare_lf_terminators(self):
        req = read_request(_stream("GET / HTTP/1.1", "Host: a", "", terminator="\n"))
        assert req.host == "a"
        assert req.header_lines[0] == "GET / HTTP/1.0"

    def test_leading_blank_lines_skipped(self):
        req = read_request(_stream("", "", "GET / HTTP/1.1", "Host: a", ""))
        assert req.verb == "GET"

    def test_missing_host_parses(self):
        req = read_request(_stream("GET / HTTP/1.1", "Accept: */*", ""))
        assert req.host is None

    def test_body_left_in_stream(self):
        stream = _stream("POST / HTTP/1.1", "Host: a", "Content-Length: 3", "", body=b"a=1")
        req = read_request(stream)
        assert req.declared_length == 3
        assert stream.read() == b"a=1"

    def test_eof_in_headers(self):
        with pytest.raises(ProtocolError):
            read_request(io.BytesIO(b"GET / HTTP/1.1\r\nHost: a\r\n"))

    def test_eof_before_request_line(self):
        with pytest.raises(ProtocolError):
            read_request(io.BytesIO(b""))


# ── Response ─────────────────────────────────────────────────────────────────


class TestReadResponse:
    def test_textual_response(self):
        stream = _stream(
            "HTTP/1.1 200 OK",
            "Content-Type: text/html; charset=ISO-8859-1",
            "Content-Length: 20",
            "",
            body=b"<title>Hi</title>",
        )
        resp = read_response(stream)
        assert resp.status_line == "200 OK"
        assert resp.status_code == 200
        assert resp.content_type == "text/html"
        assert resp.charset == "ISO-8859-1"
        assert resp.declared_length == 20
        assert resp.headers_complete
        assert resp.is_textual
        assert resp.header_lines == [
            "HTTP/1.1 200 OK",
            "Content-Type: text/html; charset=ISO-8859-1",
            "Content-Length: 20",
        ]
        assert stream.read() == b"<title>Hi</title>"

    def test_content_type_case_insensitive(self):
        resp = read_response(_stream("HTTP/1.0 200 OK", "content-type: TEXT/Plain", ""))
        assert resp.content_type == "text/plain"
        assert resp.is_textual

    def test_binary_response(self):
        resp = read_response(_stream("HTTP/1.1 200 OK", "Content-Type: image/png", ""))
        assert not resp.is_textual
        assert resp.declared_length is None

    def test_lines_not_rewritten(self):
        resp = read_response(_stream("HTTP/1.1 301 Moved", "Connection: keep-alive", ""))
        assert resp.header_lines == ["HTTP/1.1 301 Moved", "Connection: keep-alive"]

    def test_non_http_status_line(self):
        resp = read_response(_stream("garbage", ""))
        assert resp.status_line is None
        assert resp.status_code is None
        assert resp.header_lines == ["garbage"]

    def test_eof_before_status(self):
        with pytest.raises(ProtocolError):
            read_response(io.BytesIO(b""))

    def test_headers_complete_only_after_blank(self):
        resp = Response()
        stream = io.BytesIO(b"HTTP/1.1 200 OK\r\nContent-Type: text/html\r\n")
        read_response_line(stream, resp)
        with pytest.raises(ProtocolError):
            read_response_headers(stream, resp)
        assert not resp.headers_complete
        assert resp.content_type == "text/html"
