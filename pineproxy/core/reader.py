"""
PineProxy Protocol Reader
=========================
Turns a line-oriented byte stream into a populated :class:`Request` or
:class:`Response`, applying the normalization rules as each line arrives.

Request leg:
  • the request line is rewritten to ``VERB target HTTP/1.0`` and an
    absolute-form target is reduced to path + query
  • ``Host`` and ``Content-Length`` are captured
  • ``Connection`` / ``Proxy-Connection`` become ``Connection: close``
  • ``Accept-Encoding`` becomes ``Accept-Encoding: identity``

Response leg:
  • status line, primary ``Content-Type`` and ``Content-Length`` are captured
  • no line is rewritten

Input lines may end in ``\\n`` or ``\\r\\n``.
"""

from __future__ import annotations

import re
import urllib.parse
from typing import BinaryIO, Optional

from pineproxy.core.models import HEADER_ENCODING, Request, Response

MAX_LINE = 65536


class ProtocolError(Exception):
    """The peer sent something that cannot be parsed as HTTP/1.x."""


_REQUEST_LINE = re.compile(r"^(\w+)\s+(\S+)\s+HTTP/[\d.]+\s*$")
_STATUS_LINE = re.compile(r"^HTTP/[\d.]+\s+(.+)$")
_HOST = re.compile(r"^Host:\s*(.*)$", re.IGNORECASE)
_HOST_PORT = re.compile(r"^([^:]*):(\d*)$")
_CONTENT_LENGTH = re.compile(r"^Content-Length:\s*(\d+)\s*$", re.IGNORECASE)
_CONTENT_TYPE = re.compile(r"^Content-Type:\s*([^;]+)(.*)$", re.IGNORECASE)
_CHARSET = re.compile(r"charset=\"?([\w.:-]+)", re.IGNORECASE)
_CONNECTION = re.compile(r"^(?:Proxy-)?Connection:", re.IGNORECASE)
_ACCEPT_ENCODING = re.compile(r"^Accept-Encoding:", re.IGNORECASE)


def read_line(rfile: BinaryIO) -> Optional[str]:
    """Read one line without its terminator. Returns None at EOF."""
    raw = rfile.readline(MAX_LINE + 1)
    if not raw:
        return None
    if len(raw) > MAX_LINE:
        raise ProtocolError("header line too long")
    line = raw.decode(HEADER_ENCODING)
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def _require_line(rfile: BinaryIO, what: str) -> str:
    line = read_line(rfile)
    if line is None:
        raise ProtocolError(f"connection closed while reading {what}")
    return line


# ── Request rules ────────────────────────────────────────────────────────────

def origin_form(target: str) -> str:
    """Strip scheme and authority from an absolute-form request target."""
    if "://" not in target:
        return target
    parts = urllib.parse.urlsplit(target)
    path = parts.path or "/"
    if parts.query:
        path += f"?{parts.query}"
    return path


def apply_request_line(request: Request, line: str) -> None:
    """Parse and normalize the first line of a request."""
    match = _REQUEST_LINE.match(line)
    if match is None:
        # Keep the line; nothing downstream can be extracted from it.
        request.header_lines.append(line)
        return

    request.verb = match.group(1)
    request.target = origin_form(match.group(2))
    request.header_lines.append(f"{request.verb} {request.target} HTTP/1.0")


def apply_request_header(request: Request, line: str) -> None:
    """Apply the first matching header rule and store the resulting line."""
    host_match = _HOST.match(line)
    length_match = _CONTENT_LENGTH.match(line)
    if host_match:
        host = host_match.group(1).strip()
        with_port = _HOST_PORT.match(host)
        if with_port:
            host = with_port.group(1)
            if with_port.group(2):
                request.port = int(with_port.group(2))
        request.host = host
    elif length_match:
        request.declared_length = int(length_match.group(1))
    elif _CONNECTION.match(line):
        line = "Connection: close"
    elif _ACCEPT_ENCODING.match(line):
        line = "Accept-Encoding: identity"

    request.header_lines.append(line)


def read_request_line(rfile: BinaryIO, request: Request) -> None:
    line = _require_line(rfile, "the request line")
    while line == "":
        line = _require_line(rfile, "the request line")
    apply_request_line(request, line)


def read_request_headers(rfile: BinaryIO, request: Request) -> None:
    while True:
        line = _require_line(rfile, "request headers")
        if line == "":
            return
        apply_request_header(request, line)


def read_request(rfile: BinaryIO) -> Request:
    """Parse a complete request header block from ``rfile``."""
    request = Request()
    read_request_line(rfile, request)
    read_request_headers(rfile, request)
    return request


# ── Response rules ───────────────────────────────────────────────────────────

def apply_response_line(response: Response, line: str) -> None:
    match = _STATUS_LINE.match(line)
    if match:
        response.status_line = match.group(1).strip()
    response.header_lines.append(line)


def apply_response_header(response: Response, line: str) -> None:
    if line == "":
        response.headers_complete = True
        return

    match = _CONTENT_TYPE.match(line)
    if match:
        response.content_type = match.group(1).strip().lower()
        charset = _CHARSET.search(match.group(2))
        if charset:
            response.charset = charset.group(1)
    else:
        match = _CONTENT_LENGTH.match(line)
        if match:
            response.declared_length = int(match.group(1))

    response.header_lines.append(line)


def read_response_line(rfile: BinaryIO, response: Response) -> None:
    apply_response_line(response, _require_line(rfile, "the status line"))


def read_response_headers(rfile: BinaryIO, response: Response) -> None:
    while not response.headers_complete:
        apply_response_header(response, _require_line(rfile, "response headers"))


def read_response(rfile: BinaryIO) -> Response:
    """Parse a complete response header block; the body is left unread."""
    response = Response()
    read_response_line(rfile, response)
    read_response_headers(rfile, response)
    return response
