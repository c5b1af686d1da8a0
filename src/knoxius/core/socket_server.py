"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket and hands every accepted client socket to a
callback. It knows nothing about HTTP.

    socket() → setsockopt() → bind() → listen() → accept() loop → close()

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   restart immediately, no "Address already in use" while
                   the old socket sits in TIME_WAIT
    SO_REUSEPORT   several processes may share the port (where available)
    TCP_NODELAY    responses leave as soon as they are written

The listening socket has a 1 s timeout so the accept loop notices a
shutdown request even when no client connects.

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) trigger ``shutdown()``.
Python only allows handlers on the main thread, so a listener started from
any other thread (tests, embedding) leaves signals alone.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Dict, Optional, Tuple

from ..config import ServerConfig


logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[socket.socket, Tuple[str, int]], None]


class SocketServer:
    """
    Accepts TCP connections until ``shutdown()`` is called.

    Usage:

        def on_connection(client_socket, address):
            ...

        server = SocketServer(config)
        server.start(on_connection)   # blocks
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._original_handlers: Dict[int, object] = {}

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). Reflects the real port when configured with 0."""
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return host, port
        return self.config.host, self.config.port

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready.wait(timeout)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass  # not available on Windows
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, on_connection: ConnectionCallback):
        """
        Bind, listen and accept until shutdown. Blocks.

        Args:
            on_connection: Called with ``(client_socket, address)`` for each
                           accepted connection. It owns the client socket.

        Raises:
            OSError: The address could not be bound.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready.set()

        try:
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: ConnectionCallback):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            # Accepted sockets inherit the listener's timeout; sessions
            # manage their own.
            client_socket.settimeout(None)
            on_connection(client_socket, client_address)

    def shutdown(self):
        """Stop accepting. Safe to call more than once and from any thread."""
        if not self._running:
            return
        logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        self._running = False
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.info("Socket server stopped")
