"""
=============================================================================
KNOXIUS - HTTP/1.1 over raw sockets
=============================================================================

A small threaded HTTP/1.1 server: a keep-alive session per connection,
Content-Length bodies, gzip responses, Basic-auth decoding, plus a client
and JSON endpoints for the Agilefant project-management application.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    knoxius/
    ├── config.py          ServerConfig (defaults, env, validation)
    ├── server.py          HTTPServer: listener + pool + sessions
    ├── __main__.py        python -m knoxius
    ├── core/              sockets, threads, the per-connection loop
    ├── http/              parsing, responses, routing, errors
    ├── agilefant/         httpx-based Agilefant client
    └── handlers/          Agilefant JSON endpoints

=============================================================================
QUICK START
=============================================================================

    from knoxius import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=8080))

    @server.get("/hello/:name")
    def hello(session):
        session.write_success(f'{{"hello": "{session.path_params["name"]}"}}')

    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HTTPServer, create_app

__all__ = ["HTTPServer", "ServerConfig", "create_app", "__version__"]
