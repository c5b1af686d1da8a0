"""
=============================================================================
HTTP SERVER
=============================================================================

Wires the listener, the worker pool and the connection sessions together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ── accept ──► HTTPServer._on_connection               │
    │                                     │                                │
    │                        pool.submit(Session(...).run)                 │
    │                          │                       │                   │
    │                       queued                 queue full              │
    │                          │                       │                   │
    │                          ▼                       ▼                   │
    │            worker runs the session       503, close socket           │
    │            until the connection ends                                 │
    │                          │                                           │
    │                          ▼                                           │
    │                 handler(session)  (Router by default)                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Sessions share nothing. A failure in one of them is handled inside that
session (or, at worst, logged by its worker) and never reaches the listener.

=============================================================================
"""

import json
import logging
import socket
from typing import Callable, List, Optional, Tuple

from .config import ServerConfig
from .core import Session, SocketServer, ThreadPool
from .handlers import AgilefantHandlers
from .http import (
    HTTPMethod,
    HTTPStatus,
    Request,
    Response,
    ResponseWriter,
    Router,
)


logger = logging.getLogger(__name__)

SessionHandler = Callable[[Session], None]


class HTTPServer:
    """
    HTTP/1.1 server running one session per accepted connection.

    Usage:

        server = HTTPServer(ServerConfig(port=8080))

        @server.get("/sprint/:id")
        def sprint(session):
            session.write_success(json.dumps({"id": session.path_params["id"]}))

        server.run()   # blocks until SIGINT / SIGTERM / shutdown()

    Passing ``handler`` replaces the built-in router with any callable that
    takes a session.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[SessionHandler] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._router = Router()
        self._handler: SessionHandler = handler or self._router
        self._shutdown_hooks: List[Callable[[], None]] = []
        self._running = False

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, method: Optional[str] = None):
        return self._router.route(path, method)

    def get(self, path: str):
        return self._router.get(path)

    def post(self, path: str):
        return self._router.post(path)

    def put(self, path: str):
        return self._router.put(path)

    def delete(self, path: str):
        return self._router.delete(path)

    def head(self, path: str):
        return self._router.head(path)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def on_shutdown(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` once the workers have drained."""
        self._shutdown_hooks.append(callback)
        return callback

    def run(self) -> None:
        """Start the pool and accept connections. Blocks until shutdown."""
        self._setup_logging()
        self._running = True
        self._thread_pool.start()

        logger.info(
            f"Starting HTTP server on {self.config.host}:{self.config.port} "
            f"({self.config.min_workers}-{self.config.max_workers} workers)"
        )

        try:
            self._socket_server.start(self._on_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._stop()

    def shutdown(self) -> None:
        """Stop accepting connections; ``run()`` then drains and returns."""
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("knoxius").setLevel(level)

    def _stop(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.keep_alive_timeout + 5.0)
        for callback in self._shutdown_hooks:
            try:
                callback()
            except Exception:
                logger.exception(f"Shutdown hook {callback!r} failed")
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _on_connection(self, client_socket: socket.socket, address: Tuple[str, int]) -> None:
        session = Session(client_socket, address, self._handler, self.config)
        if not self._thread_pool.submit(session.run):
            logger.warning(f"[{session.id}] Thread pool full, rejecting connection")
            self._reject(session)

    def _reject(self, session: Session) -> None:
        """503 and close, without reading the request."""
        response = Response(powered_by=self.config.powered_by)
        response.force_close = True
        request = Request(method=HTTPMethod.GET, url="", http_version="HTTP/1.1")
        try:
            ResponseWriter(session.sock, request, response).write_response(
                HTTPStatus.SERVICE_UNAVAILABLE,
                json.dumps({"error": "Server overloaded"}),
                "application/json",
            )
        except OSError as e:
            logger.debug(f"[{session.id}] Could not send 503: {e}")
        session.close()


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """Server with the project-management routes registered."""
    server = HTTPServer(config)
    handlers = AgilefantHandlers(server.config)
    handlers.register(server.router)
    server.on_shutdown(handlers.close_all)
    return server
