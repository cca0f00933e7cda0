"""
PineProxy Message Models
========================
Incrementally built representations of the two HTTP legs of an exchange.

Both models keep their header block as an ordered list of raw lines (the
first line included, the terminating blank line excluded) plus a separate
body buffer. Lines are stored decoded as ISO-8859-1 so every byte survives a
decode/encode round trip.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass, field
from typing import List, Optional

# Emitted after every header line, and once more to end the block.
CRLF = "\r\n"
HEADER_ENCODING = "iso-8859-1"
DEFAULT_PORT = 80

_CONTENT_LENGTH_LINE = re.compile(r"^Content-Length:\s*\d+\s*$", re.IGNORECASE)


def truncate_url(url: str, limit: int = 50) -> str:
    """Shorten a URL for log lines."""
    if len(url) <= limit:
        return url
    return url[:limit] + "..."


def _header_block(lines: List[str]) -> bytes:
    return (CRLF.join(lines) + CRLF + CRLF).encode(HEADER_ENCODING)


# ── Request ──────────────────────────────────────────────────────────────────

@dataclass
class Request:
    """
    The client leg of an exchange.

    Attributes:
        verb: Method token from the request line, None until parsed.
        target: Origin-relative path plus optional query string.
        host: Origin host from the ``Host`` header.
        port: Origin port, 80 unless the ``Host`` header names one.
        declared_length: Value of ``Content-Length``, 0 when absent.
        header_lines: Raw lines, already normalized for forwarding.
        raw_body: Body bytes captured while relaying a POST to the origin.
    """
    verb: Optional[str] = None
    target: Optional[str] = None
    host: Optional[str] = None
    port: int = DEFAULT_PORT
    declared_length: int = 0
    header_lines: List[str] = field(default_factory=list)
    raw_body: bytearray = field(default_factory=bytearray)

    @property
    def is_post(self) -> bool:
        return self.verb == "POST"

    @property
    def url(self) -> str:
        """Full URL of the requested resource, for display."""
        authority = self.host or ""
        if self.port != DEFAULT_PORT:
            authority += f":{self.port}"
        return f"http://{authority}{self.target or ''}"

    def header_block(self) -> bytes:
        """Serialized header block as sent to the origin."""
        return _header_block(self.header_lines)

    def to_text(self) -> str:
        """Header block followed by the captured body, for dumping."""
        head = CRLF.join(self.header_lines) + CRLF + CRLF
        return head + bytes(self.raw_body).decode("utf-8", errors="replace")


# ── Response ─────────────────────────────────────────────────────────────────

@dataclass
class Response:
    """
    The origin leg of an exchange.

    ``body`` is only filled for textual responses; binary responses are
    streamed straight through and never buffered.
    """
    status_line: Optional[str] = None
    content_type: Optional[str] = None
    charset: Optional[str] = None
    declared_length: Optional[int] = None
    header_lines: List[str] = field(default_factory=list)
    headers_complete: bool = False
    body: bytes = b""

    @property
    def is_textual(self) -> bool:
        return bool(self.content_type) and self.content_type.startswith("text/")

    @property
    def status_code(self) -> Optional[int]:
        if not self.status_line:
            return None
        token = self.status_line.split(maxsplit=1)[0]
        return int(token) if token.isdigit() else None

    @property
    def encoding(self) -> str:
        """Declared charset if Python knows it, UTF-8 otherwise."""
        if not self.charset:
            return "utf-8"
        try:
            codecs.lookup(self.charset)
        except LookupError:
            return "utf-8"
        return self.charset

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding, errors="replace")

    @text.setter
    def text(self, value: str) -> None:
        self.body = value.encode(self.encoding)

    def serialize(self) -> bytes:
        """
        Header block followed by the body.

        For textual responses every ``Content-Length`` line is rewritten to
        the current size of ``body``; otherwise the headers go out verbatim.
        """
        lines = self.header_lines
        if self.is_textual:
            size = len(self.body)
            lines = [
                f"Content-Length: {size}" if _CONTENT_LENGTH_LINE.match(line) else line
                for line in lines
            ]
        return _header_block(lines) + self.body
