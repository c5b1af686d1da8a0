"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables for the listener, the connection sessions and the project
management client, in one typed dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌──────────────────┐    ┌──────────────────┐    ┌──────────────────┐
    │  dataclass       │    │  environment     │    │  command line    │
    │  defaults        │──► │  KNOXIUS_*       │──► │  --port, ...     │
    └──────────────────┘    └──────────────────┘    └──────────────────┘
         lowest                                         highest

``validate()`` runs once at startup and raises ``ValueError`` on the first
bad value.

=============================================================================
"""

import os
from dataclasses import dataclass


DEFAULT_AGILEFANT_URL = "http://agilefant.cosc.canterbury.ac.nz:8080/agilefant302/"


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Development:
        ServerConfig(port=8080, log_level="DEBUG")

    Tests (OS-assigned port):
        ServerConfig(port=0, min_workers=2, max_workers=4)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" for every interface."""

    port: int = 8080
    """Listen port. 0 lets the OS pick one (see ``SocketServer.address``)."""

    backlog: int = 128
    """Pending connections the kernel queues before refusing."""

    buffer_size: int = 4096
    """Bytes per recv(). Also bounds each body read."""

    timeout: float = 30.0
    """
    Deadline in seconds for each line or body chunk once a request has
    started arriving.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive_timeout: float = 5.0
    """Idle seconds a kept-alive connection may wait for its next request."""

    max_body_size: int = 10 * 1024 * 1024  # 10 MiB
    """Largest Content-Length accepted. Checked before any body byte is read."""

    max_line_size: int = 64 * 1024
    """Longest request or header line accepted."""

    max_header_size: int = 256 * 1024
    """Largest header block accepted, all header lines together."""

    powered_by: str = "Knoxius Servius"
    """Value of the X-Powered-By header on every response."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started up front."""

    max_workers: int = 16
    """Upper bound on worker threads, i.e. on concurrent connections."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    # ─────────────────────────────────────────────────────────────────────
    # PROJECT MANAGEMENT CLIENT
    # ─────────────────────────────────────────────────────────────────────

    agilefant_url: str = DEFAULT_AGILEFANT_URL
    """Base URL of the Agilefant web application."""

    agilefant_timeout: float = 10.0
    """Seconds before an upstream request gives up."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

            KNOXIUS_HOST                 bind address
            KNOXIUS_PORT                 listen port
            KNOXIUS_WORKERS              max worker threads
            KNOXIUS_TIMEOUT              per-line deadline (s)
            KNOXIUS_KEEP_ALIVE_TIMEOUT   idle keep-alive deadline (s)
            KNOXIUS_LOG_LEVEL            logging level
            KNOXIUS_AGILEFANT_URL        Agilefant base URL
        """
        defaults = cls()
        max_workers = int(os.getenv("KNOXIUS_WORKERS", str(defaults.max_workers)))
        return cls(
            host=os.getenv("KNOXIUS_HOST", defaults.host),
            port=int(os.getenv("KNOXIUS_PORT", str(defaults.port))),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("KNOXIUS_TIMEOUT", str(defaults.timeout))),
            keep_alive_timeout=float(
                os.getenv("KNOXIUS_KEEP_ALIVE_TIMEOUT", str(defaults.keep_alive_timeout))
            ),
            log_level=os.getenv("KNOXIUS_LOG_LEVEL", defaults.log_level),
            agilefant_url=os.getenv("KNOXIUS_AGILEFANT_URL", defaults.agilefant_url),
        )

    def validate(self) -> None:
        """Fail fast on values the server cannot run with."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if self.max_line_size < 256:
            raise ValueError("max_line_size must be >= 256")

        if self.max_header_size < self.max_line_size:
            raise ValueError("max_header_size must be >= max_line_size")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")
