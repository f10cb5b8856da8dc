"""
=============================================================================
TCP LISTENER AND ACCEPT LOOP
=============================================================================

Owns the listening socket. Accepts clients, wraps each in a Connection
and hands it to a callback. It never reads or writes client data itself.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    AF_INET, or AF_INET6 for IPv6 literals
    2. setsockopt  SO_REUSEADDR, SO_REUSEPORT (if available), TCP_NODELAY
    3. bind()      host:port; port 0 lets the OS choose
    4. listen()    backlog from config
    5. accept()    loop until shutdown(); 1s timeout so the loop can
                   notice the running flag
    6. close()     on exit, with signal handlers restored

=============================================================================
ERRORS
=============================================================================

    bind() fails      → logged and re-raised; nothing to serve without it
    accept() fails    → logged, loop continues (e.g. EMFILE under load,
                        ECONNABORTED when a client gives up in the queue)
    handler raises    → logged with traceback, client socket closed,
                        loop continues
    after shutdown()  → loop ends quietly

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) trigger shutdown().
Python only allows installing handlers from the main thread, so a server
started from a background thread (tests, embedding) skips this step and
must be stopped with shutdown().
=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def handle(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle)   # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False
        self._ready = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) actually bound, once listening.

        Before start() this is the configured address; after bind() a
        configured port of 0 is replaced by the port the OS assigned.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                pass  # Defined but unsupported by this kernel

        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Periodic wake-ups so the accept loop can see shutdown()
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        connection_handler: Callable[[Connection], None],
        on_ready: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and run the accept loop. Blocks until shutdown().

        Args:
            connection_handler: Called with each accepted Connection, on the
                                accept thread. It should hand the connection
                                off quickly (the server submits it to the
                                thread pool).
            on_ready: Called once, after listen() and before the first
                      accept(). address is final by then.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.address}: {e}")
            self._socket.close()
            self._socket = None
            raise

        sockname = self._socket.getsockname()
        self._bound_address = (sockname[0], sockname[1])

        self._running = True
        self._setup_signals()

        logger.info(f"Server listening on {self._format_address()}")
        self._ready.set()

        try:
            if on_ready is not None:
                on_ready()
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _format_address(self) -> str:
        host, port = self.address
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                # Transient (EMFILE, ECONNABORTED, ...): keep serving
                logger.error(f"Accept error: {e}")
                continue

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                )
                logger.debug(
                    f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}"
                )
                connection_handler(conn)
            except Exception:
                # One bad connection must not take the listener down
                logger.exception(f"Failed to hand off connection from {client_address}")
                client_socket.close()

    def shutdown(self):
        """Stop accepting. Idempotent and safe from any thread or a signal handler."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._running = False
        self._restore_signals()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

