"""
=============================================================================
AGILEFANT HANDLERS
=============================================================================

JSON endpoints in front of the Agilefant web client.

    POST /login                  Basic credentials → session cookie
    POST /logout                 drop the cookie's Agilefant session
    GET  /sprint/:id             one sprint
    GET  /sprint/:id/burndown    burndown chart, base64 in JSON
    GET  /project/:id/sprints    all sprints of a project

=============================================================================
AUTHENTICATION FLOW
=============================================================================

    client                         server                      Agilefant
      │  POST /login                 │                              │
      │  Authorization: Basic …  ──► │  login(user, pass)       ──► │
      │                              │  ◄── JSESSIONID              │
      │  ◄── Set-Cookie: session=T   │  sessions[T] = client        │
      │                              │                              │
      │  GET /sprint/42              │                              │
      │  Cookie: session=T       ──► │  sessions[T].get(…)      ──► │

The token map is shared by every worker thread, so it is guarded by a lock.
Requests without a known token get 401 with a Basic challenge.

The map is bounded. Logging in again with a session cookie replaces that
cookie's Agilefant session, the oldest entry is evicted once
``max_sessions`` is reached, and ``close_all()`` (run at server shutdown)
logs everything out. A dropped session is logged out and its client closed.

=============================================================================
"""

import base64
import functools
import json
import logging
import secrets
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import httpx

from ..agilefant import (
    AgilefantError,
    AgilefantSession,
    get_burndown_image,
    get_sprint,
    get_sprints,
    login,
)
from ..config import ServerConfig
from ..http import HTTPStatus, MalformedAuthorization, Router, basic_credentials

if TYPE_CHECKING:
    from ..core.session import Session


logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
MAX_SESSIONS = 256

LoginFunction = Callable[[str, str], Optional[AgilefantSession]]


class AgilefantHandlers:
    """
    Route handlers backed by per-user Agilefant sessions.

    Args:
        config: Supplies the Agilefant URL and timeout.
        login_function: ``(username, password) → session or None``. Defaults
                        to ``knoxius.agilefant.login`` against ``config``.
        max_sessions: Logged-in sessions kept before the oldest is dropped.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        login_function: Optional[LoginFunction] = None,
        max_sessions: int = MAX_SESSIONS,
    ):
        config = config or ServerConfig()
        self._login = login_function or functools.partial(
            login, base_url=config.agilefant_url, timeout=config.agilefant_timeout
        )
        self.max_sessions = max_sessions
        self._sessions: Dict[str, AgilefantSession] = {}
        self._lock = threading.Lock()

    def register(self, router: Router) -> Router:
        router.post("/login")(self.login)
        router.post("/logout")(self.logout)
        router.get("/sprint/:id")(self.sprint)
        router.get("/sprint/:id/burndown")(self.burndown)
        router.get("/project/:id/sprints")(self.project_sprints)
        return router

    @property
    def active_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)

    def close_all(self) -> None:
        """Log out and close every stored session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for agilefant in sessions:
            self._discard(agilefant, "shutdown")
        if sessions:
            logger.info(f"Closed {len(sessions)} Agilefant sessions")

    def _discard(self, agilefant: AgilefantSession, context: str) -> None:
        """Best-effort logout, then release the client."""
        try:
            if agilefant.is_logged_in:
                agilefant.logout()
        except (httpx.HTTPError, AgilefantError) as e:
            logger.warning(f"[{context}] Agilefant logout failed: {e}")
        finally:
            agilefant.close()

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    def login(self, session: "Session") -> None:
        try:
            credentials = basic_credentials(session.request)
        except MalformedAuthorization as e:
            logger.info(f"[{session.id}] Rejecting malformed credentials: {e}")
            credentials = None

        if credentials is None:
            session.write_auth_required()
            return

        username, password = credentials
        agilefant = self._login(username, password)
        if agilefant is None:
            session.write_auth_required()
            return

        previous_token = session.request.cookies.get(SESSION_COOKIE)
        token = secrets.token_urlsafe(24)
        dropped = []
        with self._lock:
            if previous_token in self._sessions:
                dropped.append(self._sessions.pop(previous_token))
            while self._sessions and len(self._sessions) >= self.max_sessions:
                oldest = next(iter(self._sessions))
                dropped.append(self._sessions.pop(oldest))
            self._sessions[token] = agilefant

        for old in dropped:
            self._discard(old, session.id)

        session.response.set_cookie(SESSION_COOKIE, f"{token}; Path=/; HttpOnly")
        session.write_success(json.dumps({"success": True, "username": username}))

    def logout(self, session: "Session") -> None:
        token = session.request.cookies.get(SESSION_COOKIE)
        with self._lock:
            agilefant = self._sessions.pop(token, None) if token else None

        if agilefant is None:
            session.write_auth_required()
            return

        self._discard(agilefant, session.id)

        session.response.set_cookie(SESSION_COOKIE, "; Path=/; Max-Age=0")
        session.write_success(json.dumps({"success": True}))

    def _agilefant_for(self, session: "Session") -> Optional[AgilefantSession]:
        """The caller's Agilefant session; writes 401 and returns None if unknown."""
        token = session.request.cookies.get(SESSION_COOKIE)
        with self._lock:
            agilefant = self._sessions.get(token) if token else None
        if agilefant is None:
            session.write_auth_required()
        return agilefant

    # =========================================================================
    # RESOURCES
    # =========================================================================

    def sprint(self, session: "Session") -> None:
        self._fetch(session, lambda agilefant, sprint_id: get_sprint(agilefant, sprint_id).to_dict())

    def project_sprints(self, session: "Session") -> None:
        self._fetch(
            session,
            lambda agilefant, project_id: [s.to_dict() for s in get_sprints(agilefant, project_id)],
        )

    def burndown(self, session: "Session") -> None:
        def fetch(agilefant: AgilefantSession, sprint_id: int) -> Dict[str, Any]:
            image = get_burndown_image(agilefant, sprint_id)
            return {
                "contentType": image.content_type,
                "data": base64.b64encode(image.data).decode("ascii"),
            }

        self._fetch(session, fetch)

    def _fetch(self, session: "Session", fetch: Callable[[AgilefantSession, int], Any]) -> None:
        """
        Shared flow for the read endpoints:

            unknown token → 401, bad id → 400, Agilefant error → 502,
            otherwise 200 with ``fetch(agilefant, id)`` as JSON.
        """
        agilefant = self._agilefant_for(session)
        if agilefant is None:
            return

        raw_id = session.path_params.get("id", "")
        if not raw_id.isdigit():
            session.write_response(
                HTTPStatus.BAD_REQUEST,
                json.dumps({"error": f"Invalid id: {raw_id!r}"}),
                "application/json",
            )
            return

        try:
            payload = fetch(agilefant, int(raw_id))
        except (httpx.HTTPError, AgilefantError, ValueError) as e:
            logger.warning(f"[{session.id}] Agilefant request failed: {e}")
            session.write_response(
                HTTPStatus.BAD_GATEWAY,
                json.dumps({"error": "Agilefant request failed"}),
                "application/json",
            )
            return

        session.write_success(json.dumps(payload))
