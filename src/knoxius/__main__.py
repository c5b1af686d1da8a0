"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m knoxius                         # 127.0.0.1:8080
    python -m knoxius --port 3000
    python -m knoxius --host 0.0.0.0 --workers 8
    knoxius --agilefant-url http://localhost:8080/agilefant/

Settings start from the KNOXIUS_* environment variables (see
``ServerConfig.from_env``); flags given here override them.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .server import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="knoxius",
        description="Threaded HTTP/1.1 server with Agilefant endpoints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m knoxius                         # Run with defaults
  python -m knoxius --port 3000             # Custom port
  python -m knoxius --host 0.0.0.0          # Listen on all interfaces
  python -m knoxius --workers 8             # 8-16 worker threads
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--timeout", type=float,
        help="Seconds allowed per request line, header or body chunk (default: 30)",
    )
    parser.add_argument(
        "--keep-alive-timeout", type=float,
        help="Idle seconds before a kept-alive connection is closed (default: 5)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w", type=int,
        help="Minimum worker threads; the maximum is twice this",
    )

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--agilefant-url", help="Base URL of the Agilefant installation")

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"Knoxius {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-derived config with the given flags applied on top."""
    config = ServerConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.keep_alive_timeout is not None:
        config.keep_alive_timeout = args.keep_alive_timeout
    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2
    if args.agilefant_url is not None:
        config.agilefant_url = args.agilefant_url
    if args.log_level is not None:
        config.log_level = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        server = create_app(config_from_args(args))
        server.run()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
