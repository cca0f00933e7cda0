"""
PineProxy Connection Handler
============================
Runs one client/origin round trip:

    AWAIT_REQUEST_LINE → PARSING_REQUEST_HEADERS → CONNECTING_ORIGIN
    → RELAYING_REQUEST_BODY (only when a body is declared)
    → AWAIT_RESPONSE_LINE → PARSING_RESPONSE_HEADERS
    → RELAYING_RESPONSE_BODY → CLOSED

Every stage returns an optional error message. Exceptions raised inside a
stage (socket errors, protocol errors, interceptor failures) are turned into
that message at the stage boundary, and the first error ends the session.
The origin socket is closed on every path; the client socket belongs to the
caller.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Callable, Optional, Tuple

from pineproxy.core import reader, relay
from pineproxy.core.interceptors import InterceptorPipeline
from pineproxy.core.models import Request, Response, truncate_url

Connector = Callable[[str, int], Any]


def open_origin(host: str, port: int) -> socket.socket:
    return socket.create_connection((host, port))


class ConnectionState(str, Enum):
    AWAIT_REQUEST_LINE = "await_request_line"
    PARSING_REQUEST_HEADERS = "parsing_request_headers"
    CONNECTING_ORIGIN = "connecting_origin"
    RELAYING_REQUEST_BODY = "relaying_request_body"
    AWAIT_RESPONSE_LINE = "await_response_line"
    PARSING_RESPONSE_HEADERS = "parsing_response_headers"
    RELAYING_RESPONSE_BODY = "relaying_response_body"
    CLOSED = "closed"


@dataclass
class ConnectionResult:
    """Outcome of one proxied round trip."""
    ok: bool
    state: ConnectionState
    request: Request
    response: Optional[Response] = None
    error: str = ""
    bytes_relayed: int = 0
    textual: bool = False


class Connection:
    """
    One proxied exchange between a client and an origin.

    Args:
        rfile: Buffered binary reader on the client socket.
        wfile: Binary writer on the client socket.
        client_address: ``(ip, port)`` of the client, for logging.
        pipeline: Interceptors run on textual responses.
        logger: Destination for log lines.
        connector: Opens the origin socket; defaults to a TCP connect.
    """

    def __init__(
        self,
        rfile: BinaryIO,
        wfile: BinaryIO,
        client_address: Tuple[str, int],
        pipeline: Optional[InterceptorPipeline] = None,
        logger: Optional[logging.Logger] = None,
        connector: Optional[Connector] = None,
    ):
        self.rfile = rfile
        self.wfile = wfile
        self.client_ip, self.client_port = client_address[0], client_address[1]
        self.pipeline = pipeline if pipeline is not None else InterceptorPipeline()
        self.logger = logger or logging.getLogger(__name__)
        self.connector = connector or open_origin
        self.state = ConnectionState.AWAIT_REQUEST_LINE
        self.request = Request()
        self.response: Optional[Response] = None
        self.bytes_relayed = 0
        self._origin: Any = None
        self._origin_rfile: Optional[BinaryIO] = None
        self._origin_wfile: Optional[BinaryIO] = None

    # ── Session ──────────────────────────────────────────────────────────

    def serve(self) -> ConnectionResult:
        """Run the whole exchange. Never raises."""
        self.logger.debug(f"New connection from {self.client_ip}:{self.client_port}")

        stages = (
            (ConnectionState.AWAIT_REQUEST_LINE, self._read_request_line),
            (ConnectionState.PARSING_REQUEST_HEADERS, self._read_request_headers),
            (ConnectionState.CONNECTING_ORIGIN, self._connect_origin),
            (ConnectionState.RELAYING_REQUEST_BODY, self._relay_request_body),
            (ConnectionState.AWAIT_RESPONSE_LINE, self._read_response_line),
            (ConnectionState.PARSING_RESPONSE_HEADERS, self._read_response_headers),
            (ConnectionState.RELAYING_RESPONSE_BODY, self._relay_response_body),
        )

        error = None
        failed_state = None
        try:
            for state, stage in stages:
                self.state = state
                error = self._attempt(stage)
                if error:
                    failed_state = state
                    break
        finally:
            self._close_origin()
            self.state = ConnectionState.CLOSED

        if error:
            self._log_failure(error)
            return ConnectionResult(
                ok=False,
                state=failed_state,
                request=self.request,
                response=self.response,
                error=error,
                bytes_relayed=self.bytes_relayed,
            )

        self.logger.debug(f"{self.client_ip}:{self.client_port} served.")
        return ConnectionResult(
            ok=True,
            state=ConnectionState.CLOSED,
            request=self.request,
            response=self.response,
            bytes_relayed=self.bytes_relayed,
            textual=self.response.is_textual,
        )

    def _attempt(self, stage: Callable[[], Optional[str]]) -> Optional[str]:
        try:
            return stage()
        except Exception as e:
            self.logger.debug(f"{type(e).__name__} in {self.state.value}", exc_info=True)
            return f"{type(e).__name__}: {e}" if str(e) else type(e).__name__

    def _log_failure(self, error: str) -> None:
        if self.request.host:
            self.logger.error(f"Error while serving {self.request.url}: {error}")
        else:
            self.logger.error(f"[{self.client_ip}] {error}")

    # ── Stages ───────────────────────────────────────────────────────────

    def _read_request_line(self) -> Optional[str]:
        reader.read_request_line(self.rfile, self.request)
        if self.request.verb is None:
            self.logger.debug(f"Malformed request line: {self.request.header_lines[0]!r}")
        return None

    def _read_request_headers(self) -> Optional[str]:
        reader.read_request_headers(self.rfile, self.request)
        if not self.request.host:
            return "Couldn't extract host from the request."
        return None

    def _connect_origin(self) -> Optional[str]:
        self.logger.debug(f"Connecting to {self.request.host}:{self.request.port}")
        self._origin = self.connector(self.request.host, self.request.port)
        self._origin_rfile = self._origin.makefile("rb")
        self._origin_wfile = self._origin.makefile("wb")
        self._origin_wfile.write(self.request.header_block())
        self._origin_wfile.flush()
        return None

    def _relay_request_body(self) -> Optional[str]:
        if self.request.declared_length <= 0:
            return None
        self.logger.debug(f"Getting {self.request.declared_length} bytes from client")
        sent = relay.relay_request_body(self.rfile, self._origin_wfile, self.request)
        if sent < self.request.declared_length:
            self.logger.debug(
                f"Client closed after {sent} of {self.request.declared_length} body bytes"
            )
        return None

    def _read_response_line(self) -> Optional[str]:
        self.logger.debug("Reading response ...")
        self.response = Response()
        reader.read_response_line(self._origin_rfile, self.response)
        return None

    def _read_response_headers(self) -> Optional[str]:
        reader.read_response_headers(self._origin_rfile, self.response)
        return None

    def _relay_response_body(self) -> Optional[str]:
        request, response = self.request, self.response
        if response.is_textual:
            self.logger.debug("Detected textual response")
            self.bytes_relayed = relay.relay_textual_response(
                self._origin_rfile, self.wfile, request, response, self.pipeline
            )
            self._log_exchange()
        else:
            self.logger.debug(
                f"[{self.client_ip}] -> {truncate_url(request.url)} [{response.status_line}]"
            )
            self.logger.debug("Binary streaming")
            self.bytes_relayed = relay.relay_binary_response(
                self._origin_rfile, self.wfile, response
            )
        self.logger.debug(f"Relayed {self.bytes_relayed} body bytes to {self.client_ip}")
        return None

    # ── Helpers ──────────────────────────────────────────────────────────

    def _log_exchange(self) -> None:
        response = self.response
        self.logger.info(
            f"[{self.client_ip}] {self.request.verb} {truncate_url(self.request.url)} "
            f"( {response.content_type} ) [{response.status_line or '-'}]"
        )

    def _close_origin(self) -> None:
        for resource in (self._origin_rfile, self._origin_wfile, self._origin):
            if resource is None:
                continue
            try:
                resource.close()
            except OSError as e:
                self.logger.debug(f"Error closing origin connection: {e}")
        self._origin = self._origin_rfile = self._origin_wfile = None
