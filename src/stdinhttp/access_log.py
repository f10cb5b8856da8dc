"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log record per served connection. There is no request line to log
(we never parse it), so the record describes the exchange at the TCP
level: who connected, how much they sent, how much we wrote back, and how
long it took.

    text:  127.0.0.1:53122 - - [19/Oct/2026:10:14:07 +0000] "-" 200 1043 0.41ms [a1b2c3d4]
    json:  {"connection_id": "a1b2c3d4", "client_ip": "127.0.0.1", ...}

The logger is namespaced so it can be routed on its own:

    logging.getLogger("stdinhttp.access").addHandler(file_handler)
=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional


logger = logging.getLogger("stdinhttp.access")


@dataclass
class ConnectionLog:
    """Structured record of one served connection."""

    connection_id: str
    client_ip: str
    client_port: int
    status: int
    bytes_received: int
    bytes_sent: int
    duration_ms: float
    timestamp: str
    completed: bool = True

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """
        Common-log-style line.

        The request field is "-" because the request is never parsed.
        An incomplete send is flagged so it stands out when grepping.
        """
        line = (
            f'{self.client_ip}:{self.client_port} - - [{self.timestamp}] '
            f'"-" {self.status} {self.bytes_sent} {self.duration_ms:.2f}ms '
            f'[{self.connection_id}]'
        )
        if not self.completed:
            line += " send-failed"
        return line


class AccessLogger:
    """
    Emits ConnectionLog records in text or JSON form.

    Args:
        log_format: "text" or "json".
        log_level: Level used for successful connections. Failed sends are
                   always logged at WARNING.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown access log format: {log_format}")
        self.log_format = log_format
        self.log_level = log_level

    def format(self, entry: ConnectionLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        return entry.to_text()

    def log(self, entry: ConnectionLog) -> None:
        level = self.log_level if entry.completed else logging.WARNING
        logger.log(level, self.format(entry))

    def record(
        self,
        conn,
        status: int,
        completed: bool,
        duration: float,
        timestamp: Optional[str] = None,
    ) -> ConnectionLog:
        """Build an entry from a finished Connection and log it."""
        entry = ConnectionLog(
            connection_id=conn.id,
            client_ip=conn.client_ip,
            client_port=conn.client_port,
            status=int(status),
            bytes_received=conn.bytes_received,
            bytes_sent=conn.bytes_sent,
            duration_ms=duration * 1000,
            timestamp=timestamp or time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            completed=completed,
        )
        self.log(entry)
        return entry


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO) -> None:
    """
    Root logging setup shared by the CLI and the server.

    basicConfig() is a no-op once the root logger has handlers, so calling
    this twice (CLI first, then run()) only adjusts the package level.
    """
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    logging.getLogger("stdinhttp").setLevel(level)
