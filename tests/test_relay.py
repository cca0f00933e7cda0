"""
Tests for the PineProxy relay engine.
"""

import io

from pineproxy.core.interceptors import InterceptorPipeline
from pineproxy.core.models import Request, Response
from pineproxy.core.relay import (
    CHUNK_SIZE,
    binary_relay,
    relay_binary_response,
    relay_request_body,
    relay_textual_response,
)


class _RecordingReader(io.BytesIO):
    """BytesIO that remembers the size of every read1() call."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.requested = []

    def read1(self, size=-1):
        self.requested.append(size)
        return super().read1(size)


class _Marker:
    def __init__(self, marker: bytes, active: bool = True):
        self.marker = marker
        self.active = active
        self.calls = 0

    def enabled(self):
        return self.active

    def on_request(self, request, response):
        self.calls += 1
        response.body += self.marker


# ── Binary Relay ─────────────────────────────────────────────────────────────


class TestBinaryRelay:
    def test_copies_until_eof(self):
        data = bytes(range(256)) * 10
        out = io.BytesIO()
        assert binary_relay(io.BytesIO(data), out) == len(data)
        assert out.getvalue() == data

    def test_stops_at_declared_length(self):
        out = io.BytesIO()
        source = io.BytesIO(b"a" * 3000 + b"NEXT")
        assert binary_relay(source, out, length=3000) == 3000
        assert out.getvalue() == b"a" * 3000
        assert source.read() == b"NEXT"

    def test_peer_closes_early(self):
        out = io.BytesIO()
        assert binary_relay(io.BytesIO(b"short"), out, length=100) == 5
        assert out.getvalue() == b"short"

    def test_zero_length_copies_nothing(self):
        source = _RecordingReader(b"data")
        out = io.BytesIO()
        assert binary_relay(source, out, length=0) == 0
        assert source.requested == []

    def test_fixed_chunk_size(self):
        source = _RecordingReader(b"x" * 5000)
        binary_relay(source, io.BytesIO())
        assert all(size == CHUNK_SIZE for size in source.requested)

    def test_last_chunk_capped_to_remaining(self):
        source = _RecordingReader(b"x" * 5000)
        binary_relay(source, io.BytesIO(), length=1500)
        assert source.requested == [CHUNK_SIZE, 1500 - CHUNK_SIZE]

    def test_capture(self):
        captured = bytearray()
        binary_relay(io.BytesIO(b"payload"), io.BytesIO(), length=7, capture=captured)
        assert captured == b"payload"


class TestRequestBody:
    def test_post_body_captured(self):
        req = Request(verb="POST", declared_length=2500)
        out = io.BytesIO()
        sent = relay_request_body(io.BytesIO(b"p" * 2500 + b"extra"), out, req)
        assert sent == 2500
        assert len(out.getvalue()) == 2500
        assert len(req.raw_body) == 2500

    def test_put_body_not_captured(self):
        req = Request(verb="PUT", declared_length=4)
        out = io.BytesIO()
        relay_request_body(io.BytesIO(b"data"), out, req)
        assert out.getvalue() == b"data"
        assert req.raw_body == bytearray()


class TestBinaryResponse:
    def test_headers_then_body(self):
        resp = Response(
            content_type="image/png",
            declared_length=2048,
            header_lines=["HTTP/1.1 200 OK", "Content-Type: image/png", "Content-Length: 2048"],
        )
        body = bytes(range(256)) * 8
        out = io.BytesIO()
        assert relay_binary_response(io.BytesIO(body), out, resp) == 2048
        head, relayed = out.getvalue().split(b"\r\n\r\n", 1)
        assert head.endswith(b"Content-Length: 2048")
        assert relayed == body


# ── Textual Relay ────────────────────────────────────────────────────────────


class TestTextualResponse:
    def _response(self, length: int) -> Response:
        return Response(
            status_line="200 OK",
            content_type="text/html",
            declared_length=length,
            header_lines=["HTTP/1.1 200 OK", "Content-Type: text/html", f"Content-Length: {length}"],
        )

    def test_reads_past_stale_length(self):
        resp = self._response(5)
        out = io.BytesIO()
        relay_textual_response(
            io.BytesIO(b"0123456789"), out, Request(), resp, InterceptorPipeline()
        )
        assert resp.body == b"0123456789"
        assert out.getvalue().endswith(b"Content-Length: 10\r\n\r\n0123456789")

    def test_interceptors_in_order(self):
        resp = self._response(4)
        first, second = _Marker(b"[A]"), _Marker(b"[B]")
        out = io.BytesIO()
        relay_textual_response(
            io.BytesIO(b"body"), out, Request(), resp, InterceptorPipeline([first, second])
        )
        assert resp.body == b"body[A][B]"
        assert b"Content-Length: 10\r\n" in out.getvalue()

    def test_disabled_interceptor_skipped(self):
        resp = self._response(4)
        marker = _Marker(b"!", active=False)
        relay_textual_response(
            io.BytesIO(b"body"), io.BytesIO(), Request(), resp, InterceptorPipeline([marker])
        )
        assert marker.calls == 0
        assert resp.body == b"body"

    def test_large_body(self):
        body = b"<p>" + b"x" * (CHUNK_SIZE * 5 + 17) + b"</p>"
        resp = self._response(len(body))
        out = io.BytesIO()
        relayed = relay_textual_response(
            io.BytesIO(body), out, Request(), resp, InterceptorPipeline()
        )
        assert relayed == len(body)
        assert out.getvalue().endswith(body)
