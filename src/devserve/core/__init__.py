"""
=============================================================================
CORE NETWORKING
=============================================================================

Sockets and threads, with no knowledge of files or HTTP semantics:

    SocketServer   listening socket, port hunting, accept loop, signals
    Connection     one client socket: buffered reads, writes, liveness
    ThreadPool     workers that run one connection each

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import PortsInUseError, SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Accepts connections
    "PortsInUseError",  # No free port among the candidates
    "Connection",       # Client socket wrapper
    "ConnectionState",  # Connection lifecycle states
    "ThreadPool",       # Worker threads
]
