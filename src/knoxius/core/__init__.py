"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The plumbing under the HTTP layer:

    SocketServer   accepts TCP connections
    ThreadPool     runs one session per connection on a worker thread
    Session        serves every request on one connection
    LineReader     buffered, deadline-bounded reads for a session

=============================================================================
"""

from .line_reader import LineReader
from .session import Session, SessionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "LineReader",    # Buffered line/chunk reads with deadlines
    "Session",       # Per-connection request loop
    "SessionState",  # Session lifecycle states
    "SocketServer",  # Listening socket and accept loop
    "ThreadPool",    # Worker threads
]
