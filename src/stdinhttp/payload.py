"""
=============================================================================
PAYLOAD CAPTURE
=============================================================================

The payload is whatever arrives on stdin, read to EOF exactly once before
the server binds:

    cat index.html | stdin-http 127.0.0.1:8080
    echo '{"ok": true}' | stdin-http -t application/json :9000

We read the BINARY stream (sys.stdin.buffer) so the bytes are served
exactly as they arrived: no decoding, no newline translation. Images,
gzip blobs and invalid UTF-8 all work.
=============================================================================
"""

import logging
import sys
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


class PayloadError(Exception):
    """Raised when the payload cannot be read from its stream."""


def read_payload(stream: Optional[BinaryIO] = None) -> bytes:
    """
    Read the whole payload from ``stream`` (binary stdin by default).

    Blocks until EOF. An empty stream gives an empty payload, which is
    served as a zero-length body.

    Raises:
        PayloadError: If reading fails.
    """
    if stream is None:
        # sys.stdin is None when the process starts with fd 0 closed
        if sys.stdin is None:
            raise PayloadError("Could not read payload from stdin: stdin is closed")
        stream = sys.stdin.buffer

    try:
        if stream.isatty():
            logger.info("Reading payload from terminal; finish with Ctrl-D")
    except (AttributeError, ValueError):
        pass  # Not a real file, or already closed; read() will tell

    try:
        data = stream.read()
    except (OSError, ValueError) as e:
        raise PayloadError(f"Could not read payload from stdin: {e}") from e

    if data is None:
        # Non-blocking stream with nothing available yet
        raise PayloadError("Could not read payload from stdin: stream is non-blocking")

    logger.debug(f"Read {len(data)} byte payload")
    return bytes(data)
