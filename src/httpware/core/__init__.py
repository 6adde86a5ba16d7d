"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

Networking plumbing under ``HTTPServer``:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ SocketServer    listening socket, accept loop, signal handling      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ each accepted socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │ ThreadPool      bounded queue, min/max workers, scale-up            │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ one worker per connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │ Connection      buffered reads, fixed/chunked/close-delimited writes│
    │ H2Session       HTTP/2 streams on the same socket (prior knowledge) │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, H2_PREFACE_START
from .thread_pool import ThreadPool
from .h2_session import H2Session

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "H2_PREFACE_START",
    "ThreadPool",
    "H2Session",
]
