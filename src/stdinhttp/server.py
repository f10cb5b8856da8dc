"""
=============================================================================
CANNED RESPONSE SERVER
=============================================================================

Ties the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   stdin ──► payload ──► CannedResponse ──► response bytes           │
    │                         (built once)        (serialized once)       │
    │                                                   │                  │
    │   SocketServer ──accept──► ThreadPool ──worker──► Connection        │
    │                                                   │                  │
    │                          discard read ◄───────────┤                  │
    │                          sendall(bytes) ◄─────────┤                  │
    │                          close ◄──────────────────┘                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PER-CONNECTION LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS        SocketServer accepts, wraps in Connection
    2. QUEUE                  Connection submitted to the ThreadPool
                              (blocks the accept loop if the queue is full;
                              no client is turned away)
    3. DISCARD READ           One recv(), bytes thrown away
    4. SEND                   The same pre-built bytes for everyone
    5. CLOSE                  FIN, drain, close
    6. LOG                    One access log line, counters updated

Nothing a client sends can change what the next client receives: the
response bytes are created in __init__ and only ever read afterwards.
=============================================================================
"""

import logging
import threading
import time
from typing import Optional, Tuple

from .access_log import AccessLogger, configure_logging
from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .http import CannedResponse


logger = logging.getLogger(__name__)


class CannedResponseServer:
    """
    Serve one fixed HTTP response to every TCP client.

    Usage:
        response = CannedResponse(body=b"<h1>hello</h1>")
        server = CannedResponseServer(response, ServerConfig(port=8080))
        server.run()    # Blocks until Ctrl+C / SIGTERM / shutdown()
    """

    def __init__(self, response: CannedResponse, config: Optional[ServerConfig] = None):
        """
        Args:
            response: The response to serve. Serialized here, once, and
                      served as given: config.content_type, config.status
                      and config.headers are not applied to it. Use
                      from_config() to build the response from those.
            config: Server configuration; defaults if not provided.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.response = response
        self._response_bytes = response.to_bytes()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._access_log = AccessLogger(log_format=self.config.log_format)

        self._stats_lock = threading.Lock()
        self._connections_served = 0
        self._connections_failed = 0
        self._bytes_sent = 0

        self._running = False

    @classmethod
    def from_config(cls, body: bytes, config: Optional[ServerConfig] = None) -> "CannedResponseServer":
        """
        Build the response from the config's response settings and serve ``body``.

        Raises:
            ValueError: If the configuration or its headers are invalid.
        """
        config = config or ServerConfig()
        response = CannedResponse(
            body=body,
            content_type=config.content_type,
            status=config.status,
            headers=tuple(config.headers),
        )
        return cls(response, config)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def response_bytes(self) -> bytes:
        """The exact bytes written to every client."""
        return self._response_bytes

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once listening; configured address before."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        with self._stats_lock:
            counters = {
                "connections_served": self._connections_served,
                "connections_failed": self._connections_failed,
                "bytes_sent": self._bytes_sent,
            }
        counters["pool"] = self._thread_pool.stats
        return counters

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start serving (blocking).

        Raises:
            OSError: If the listening socket cannot be bound.
        """
        configure_logging(self.config.log_level_number)
        self._thread_pool.start()
        self._running = True

        logger.info(
            f"Serving {len(self.response.body)} byte payload as "
            f"{self.response.status_line!r} ({self.response.content_type})"
        )

        try:
            self._socket_server.start(
                self._handle_connection,
                on_ready=self._print_startup_banner,
            )
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def _print_startup_banner(self):
        host, port = self.address
        if ":" in host:
            host = f"[{host}]"
        print(f"Listening on http://{host}:{port}", flush=True)

    def shutdown(self):
        """Ask the server to stop. Returns immediately; run() does the cleanup."""
        self._socket_server.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=10.0)
        logger.info(
            f"Server stopped after {self._connections_served} connections "
            f"({self._connections_failed} failed)"
        )

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is accepting connections."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Accept-thread callback: hand the connection to a worker."""
        try:
            self._thread_pool.submit(self._serve, args=(conn,), block=True)
        except RuntimeError as e:
            logger.warning(f"[{conn.id}] Dropping connection: {e}")
            conn.close()

    def _serve(self, conn: Connection):
        """
        Worker-thread body: discard read, send, close, log.

        Client-side failures are logged and counted; nothing propagates.
        """
        start = time.time()
        with conn:
            conn.discard_request()
            completed = conn.send_response(self._response_bytes)
        duration = time.time() - start

        with self._stats_lock:
            if completed:
                self._connections_served += 1
            else:
                self._connections_failed += 1
            self._bytes_sent += conn.bytes_sent

        self._access_log.record(
            conn,
            status=self.response.status,
            completed=completed,
            duration=duration,
        )
