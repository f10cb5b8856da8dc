"""
=============================================================================
STDINHTTP - Serve stdin over HTTP
=============================================================================

Reads a payload from standard input once, then answers every TCP client
with the same HTTP response carrying it. The request is never parsed;
whatever a client sends, it gets the payload.

    $ echo '<h1>maintenance</h1>' | python -m stdinhttp 0.0.0.0:8080
    Listening on http://0.0.0.0:8080

    $ curl -i http://127.0.0.1:8080/anything
    HTTP/1.1 200 OK
    Content-Length: 21
    Content-Type: text/html; charset=utf-8
    Connection: close

    <h1>maintenance</h1>

Useful as a maintenance page, a stub upstream in tests, or a quick way to
hand a file to a browser.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    stdinhttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m stdinhttp)
    ├── server.py            # CannedResponseServer
    ├── config.py            # ServerConfig dataclass, address parsing
    ├── payload.py           # Read stdin once
    ├── access_log.py        # Per-connection access log
    ├── core/
    │   ├── socket_server.py # Listener and accept loop
    │   ├── connection.py    # Discard read, send, graceful close
    │   └── thread_pool.py   # Worker threads
    └── http/
        ├── status.py        # HTTPStatus enum
        └── response.py      # CannedResponse

=============================================================================
LIBRARY USE
=============================================================================

    from stdinhttp import CannedResponse, CannedResponseServer, ServerConfig

    response = CannedResponse(body=b'{"ok": true}', content_type="application/json")
    server = CannedResponseServer(response, ServerConfig(port=3030))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .http import CannedResponse, HTTPStatus
from .payload import PayloadError, read_payload
from .server import CannedResponseServer

__all__ = [
    "CannedResponse",
    "CannedResponseServer",
    "HTTPStatus",
    "PayloadError",
    "ServerConfig",
    "read_payload",
    "__version__",
]
