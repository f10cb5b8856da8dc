"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the canned-response server.

=============================================================================
WHAT IS CONFIGURABLE?
=============================================================================

The payload itself always comes from stdin. Everything around it is
configuration:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION GROUPS                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NETWORK      host, port, backlog, buffer_size, timeout            │
    │                                                                      │
    │   RESPONSE     content_type, status, headers                        │
    │                └── Fixed at launch, identical for every client      │
    │                                                                      │
    │   THREADING    min_workers, max_workers, queue_size                 │
    │                                                                      │
    │   LOGGING      log_level, log_format                                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    Priority (highest to lowest):

    1. Command-line arguments
       └── stdin-http 0.0.0.0:9000 --content-type application/json

    2. Environment variables
       └── STDINHTTP_ADDR=0.0.0.0:9000 stdin-http

    3. Default values (in this dataclass)

=============================================================================
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .http.response import DEFAULT_CONTENT_TYPE
from .http.status import HTTPStatus


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def parse_address(address: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    Split a bind address into (host, port).

    Accepted forms:

        "127.0.0.1:8080"   → ("127.0.0.1", 8080)
        "localhost:3030"   → ("localhost", 3030)
        "[::1]:8080"       → ("::1", 8080)
        ":9000"            → ("0.0.0.0", 9000)   all interfaces
        "10.0.0.5"         → ("10.0.0.5", default_port)
        "::1"              → ("::1", default_port)

    Raises:
        ValueError: If the port is not an integer in 0-65535 or the
                    address is empty.
    """
    address = address.strip()
    if not address:
        raise ValueError("Empty bind address")

    if address.startswith("["):
        # Bracketed IPv6 literal, optionally followed by :port
        end = address.find("]")
        if end == -1:
            raise ValueError(f"Invalid address: {address!r} (unclosed '[')")
        host = address[1:end]
        rest = address[end + 1:]
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"Invalid address: {address!r}")
        port_str = rest[1:]
    elif address.count(":") > 1:
        # Bare IPv6 literal without a port
        return address, default_port
    elif ":" in address:
        host, port_str = address.rsplit(":", 1)
        host = host or "0.0.0.0"
    else:
        return address, default_port

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in address {address!r}: {port_str!r}") from None

    if not 0 <= port <= 65535:
        raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

    return host, port


@dataclass
class ServerConfig:
    """
    Configuration for the canned-response server.

    =========================================================================
    DEVELOPMENT VS CONTAINER
    =========================================================================

    Development:
        ServerConfig()                       # 127.0.0.1:8080, text/html

    Container:
        ServerConfig(
            host="0.0.0.0",                  # All interfaces
            content_type="application/json",
            log_format="json",               # For log aggregators
        )

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = DEFAULT_HOST
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (default)
    - "0.0.0.0" - All network interfaces
    """

    port: int = DEFAULT_PORT
    """The port number to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued connections before the OS refuses new ones."""

    buffer_size: int = 2048
    """
    Size of the single read performed on each connection (2 KB default).
    The bytes are discarded; this only bounds how much of the request
    we pull off the socket before answering.
    """

    timeout: Optional[float] = 30.0
    """
    Read timeout in seconds for the discard read.
    A client that connects and sends nothing still gets the response
    once this expires.
    """

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    # Read by CannedResponseServer.from_config() and the CLI. A server
    # constructed with an explicit CannedResponse serves it unchanged.

    content_type: str = DEFAULT_CONTENT_TYPE
    """Value of the Content-Type header sent with the payload."""

    status: int = 200
    """Status code of the canned response."""

    headers: List[Tuple[str, str]] = field(default_factory=list)
    """Extra fixed headers, sent in order after Content-Type."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup and kept while idle."""

    max_workers: Optional[int] = None
    """
    Upper bound on worker threads; None means no cap.
    Each in-flight connection occupies one worker until it is closed, so
    with a cap, that many silent clients delay everyone behind them by up
    to `timeout` seconds. Extra workers exit again after a minute idle.
    """

    queue_size: int = 100
    """
    Accepted connections waiting for a worker.
    When full, the accept loop waits for room rather than dropping clients.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' (human) or 'json' (machine)."""

    @property
    def address(self) -> str:
        """The configured address as "host:port" (IPv6 hosts bracketed)."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STDINHTTP_ADDR          Bind address (default: 127.0.0.1:8080)
        STDINHTTP_CONTENT_TYPE  Content-Type of the payload
        STDINHTTP_STATUS        Status code (default: 200)
        STDINHTTP_WORKERS       Worker threads kept alive (default: 4)
        STDINHTTP_MAX_WORKERS   Cap on worker threads (default: no cap)
        STDINHTTP_TIMEOUT       Read timeout in seconds (default: 30)
        STDINHTTP_LOG_LEVEL     Logging level (default: INFO)
        STDINHTTP_LOG_FORMAT    text or json (default: text)

        =====================================================================

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ValueError: If a numeric variable is not a number.
        """
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("STDINHTTP_ADDR"):
            config.host, config.port = parse_address(env["STDINHTTP_ADDR"])
        if env.get("STDINHTTP_CONTENT_TYPE"):
            config.content_type = env["STDINHTTP_CONTENT_TYPE"]
        if env.get("STDINHTTP_STATUS"):
            config.status = int(env["STDINHTTP_STATUS"])
        if env.get("STDINHTTP_WORKERS"):
            config.min_workers = int(env["STDINHTTP_WORKERS"])
        if env.get("STDINHTTP_MAX_WORKERS"):
            config.max_workers = int(env["STDINHTTP_MAX_WORKERS"])
        if env.get("STDINHTTP_TIMEOUT"):
            config.timeout = float(env["STDINHTTP_TIMEOUT"])
        if env.get("STDINHTTP_LOG_LEVEL"):
            config.log_level = env["STDINHTTP_LOG_LEVEL"].upper()
        if env.get("STDINHTTP_LOG_FORMAT"):
            config.log_format = env["STDINHTTP_LOG_FORMAT"].lower()

        return config

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by the server constructor so that a bad value fails at
        startup, before any socket is bound.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.timeout is not None and (not math.isfinite(self.timeout) or self.timeout <= 0):
            raise ValueError(f"timeout must be a finite number > 0, got {self.timeout}")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers is not None and self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        # Raises ValueError for codes we have no phrase for
        HTTPStatus.from_code(self.status)

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level}. Choose from {', '.join(LOG_LEVELS)}."
            )

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log format: {self.log_format}. Choose from {', '.join(LOG_FORMATS)}."
            )


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. ServerConfig dataclass with defaults matching the stdin-http CLI
# 2. parse_address() for "host:port" style bind addresses
# 3. STDINHTTP_* environment variables via from_env()
# 4. validate() at startup (fail-fast)
#
# Header validation lives with CannedResponse, which owns the header set.
# =============================================================================
