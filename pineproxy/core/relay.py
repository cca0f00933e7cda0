"""
PineProxy Relay Engine
======================
The two body-streaming strategies.

Binary relay copies bytes unmodified in fixed-size chunks and is used for
non-textual responses and for request bodies. Textual relay buffers the whole
response body, hands it to the interceptor pipeline and writes the rewritten
response back in one pass.
"""

from __future__ import annotations

from typing import BinaryIO, Optional

from pineproxy.core.interceptors import InterceptorPipeline
from pineproxy.core.models import Request, Response

CHUNK_SIZE = 1024


def binary_relay(
    source: BinaryIO,
    destination: BinaryIO,
    length: Optional[int] = None,
    capture: Optional[bytearray] = None,
) -> int:
    """Copy a body from ``source`` to ``destination`` untouched.

    Args:
        source: Buffered binary reader (needs ``read1``).
        destination: Binary writer; flushed after every chunk.
        length: Declared body size. The copy stops exactly there, or at EOF
            if the peer closes first. None means copy until EOF.
        capture: Optional buffer that receives a copy of every chunk.

    Returns:
        Number of bytes relayed.
    """
    relayed = 0
    while length is None or relayed < length:
        size = CHUNK_SIZE if length is None else min(CHUNK_SIZE, length - relayed)
        chunk = source.read1(size)
        if not chunk:
            break
        destination.write(chunk)
        destination.flush()
        if capture is not None:
            capture.extend(chunk)
        relayed += len(chunk)
    return relayed


def relay_request_body(source: BinaryIO, origin: BinaryIO, request: Request) -> int:
    """Stream the declared request body to the origin, capturing POST bodies."""
    capture = request.raw_body if request.is_post else None
    return binary_relay(source, origin, request.declared_length, capture)


def relay_binary_response(source: BinaryIO, client: BinaryIO, response: Response) -> int:
    """Send the verbatim header block, then stream the body."""
    client.write(response.serialize())
    client.flush()
    return binary_relay(source, client, response.declared_length)


def relay_textual_response(
    source: BinaryIO,
    client: BinaryIO,
    request: Request,
    response: Response,
    pipeline: InterceptorPipeline,
) -> int:
    """Buffer the body until EOF, run the interceptors, write the result.

    The declared length is ignored while reading: the origin closes the
    connection at the end of the body and may not honour its own header.
    """
    buffer = bytearray()
    while True:
        chunk = source.read1(CHUNK_SIZE)
        if not chunk:
            break
        buffer += chunk
    response.body = bytes(buffer)
    pipeline.run(request, response)

    payload = response.serialize()
    client.write(payload)
    client.flush()
    return len(response.body)
