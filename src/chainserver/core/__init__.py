"""
=============================================================================
CORE NETWORKING
=============================================================================

The HTTP listener the pipeline runs on:

    SocketServer   accepts TCP connections
    Connection     buffers one HTTP request at a time off a client socket
    ThreadPool     runs each connection on a worker thread

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLargeError
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLargeError",
    "ThreadPool",
]
