"""
=============================================================================
CORE NETWORKING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER                                                       │
    │  • Binds the listening socket, runs accept() on the main thread     │
    │  • SIGINT / SIGTERM → graceful shutdown                             │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  THREAD POOL                                                         │
    │  • Bounded queue of accepted connections                            │
    │  • min..max worker threads                                          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ worker serves it
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION                                                          │
    │  • One discard read, sendall(canned bytes), graceful close          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
