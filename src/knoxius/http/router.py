"""
=============================================================================
URL ROUTER
=============================================================================

Turns a table of ``(method, pattern) → handler`` into the single
``handle(session)`` callback the connection session invokes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         DISPATCH                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   session.request ──► match(method, url)                             │
    │                          │                                           │
    │             ┌────────────┼─────────────────────┐                     │
    │             ▼            ▼                     ▼                     │
    │          matched    path known, other      nothing                   │
    │             │        method only              │                      │
    │             ▼            ▼                     ▼                     │
    │   path_params set,   405 + Allow         404 + JSON error            │
    │   handler(session)                                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ROUTE PATTERNS
=============================================================================

    /sprint/:id            :param matches one segment   {"id": "42"}
    /files/*rest           *param matches the remainder {"rest": "a/b.txt"}

Patterns compile to anchored regexes with named groups:

    /project/:id/sprints  →  ^/project/(?P<id>[^/]+)/sprints$

First registered route wins, so register ``/sprint/current`` before
``/sprint/:id``.

=============================================================================
"""

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from .status_codes import HTTPStatus

if TYPE_CHECKING:
    from ..core.session import Session


# A handler takes the session and writes exactly one response through it.
Handler = Callable[["Session"], None]


@dataclass
class Route:
    """A pattern bound to a handler, optionally restricted to one method."""

    path: str
    method: Optional[str]            # None = any method
    handler: Handler
    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    Method and path based dispatch for connection sessions.

    Usage:

        router = Router()

        @router.get("/sprint/:id")
        def sprint(session):
            session.write_success(json.dumps({"id": session.path_params["id"]}))

        server = HTTPServer(config, handler=router)
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self, path: str, handler: Handler, method: Optional[str] = None
    ) -> Route:
        """
        Register ``handler`` for ``path``.

        Args:
            path: Pattern, e.g. ``/sprint/:id``.
            handler: Called with the session when the route matches.
            method: Method name, or None to accept any method.
        """
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)
        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    @staticmethod
    def _compile_pattern(path: str) -> Tuple[re.Pattern, List[str]]:
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue
            regex_parts.append("/")

            if segment.startswith(":"):
                name = segment[1:]
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>[^/]+)")
            elif segment.startswith("*"):
                name = segment[1:] or "wildcard"
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>.*)")
                break  # wildcard eats the rest
            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route accepting ``method`` whose pattern matches ``path``."""
        path = self._normalize(path)
        method = method.upper()
        for route in self._routes:
            if route.method and route.method != method:
                continue
            found = route._pattern.match(path)
            if found:
                return RouteMatch(route=route, params=found.groupdict())
        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for ``path``, used for the 405 Allow header."""
        path = self._normalize(path)
        methods = set()
        for route in self._routes:
            if route._pattern.match(path):
                if route.method is None:
                    return ["DELETE", "GET", "HEAD", "OPTIONS", "POST", "PUT"]
                methods.add(route.method)
        return sorted(methods)

    def __call__(self, session: "Session") -> None:
        request = session.request
        found = self.match(request.method.value, request.url)

        if found:
            session.path_params = found.params
            found.route.handler(session)
            return

        allowed = self.get_allowed_methods(request.url)
        if allowed:
            session.response.set_header("Allow", ", ".join(allowed))
            session.write_response(HTTPStatus.METHOD_NOT_ALLOWED)
            return

        session.write_response(
            HTTPStatus.NOT_FOUND,
            json.dumps({"error": f"No route matches {request.url}"}),
            "application/json",
        )

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(self, path: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    def put(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "PUT")

    def delete(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "DELETE")

    def head(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "HEAD")

    def routes(self) -> List[Route]:
        return list(self._routes)
