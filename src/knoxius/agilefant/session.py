"""
=============================================================================
AGILEFANT WEB CLIENT
=============================================================================

Logged-in HTTP session against an Agilefant installation.

Agilefant uses Spring Security form login: credentials are POSTed to
``j_spring_security_check`` and the server answers with a session cookie
(and a redirect). A wrong password still returns 200, but the page says
"Invalid username or password, please try again.".

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   login(user, pass)                                                  │
    │      │  POST j_spring_security_check  (j_username, j_password)       │
    │      ▼                                                               │
    │   httpx.Client keeps JSESSIONID ──► AgilefantSession                 │
    │                                        │  get(path) / post(path)     │
    │                                        │  logout()                   │
    │                                        ▼                             │
    │                                   relogin() after logout             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

``AgilefantSession`` is safe to share between handler threads:
``httpx.Client`` is thread-safe and the logged-in flag is lock-protected.

=============================================================================
"""

import logging
import threading
from typing import Any, Dict, Optional

import httpx

from ..config import DEFAULT_AGILEFANT_URL


logger = logging.getLogger(__name__)

# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

LOGIN_PATH = "j_spring_security_check"
LOGOUT_PATH = "j_spring_security_logout?exit=Logout"
INVALID_LOGIN_MARKER = "Invalid username or password, please try again."


class AgilefantError(Exception):
    """Base class for web client errors."""


class LoginFailed(AgilefantError):
    """Agilefant rejected the credentials."""


class NotLoggedIn(AgilefantError):
    """The session was used after ``logout()``."""


def _new_client(
    base_url: str, timeout: float, transport: Optional[httpx.BaseTransport]
) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


def _authenticate(client: httpx.Client, username: str, password: str) -> None:
    """
    Post the login form on ``client``. Cookies land in its jar.

    Raises:
        httpx.HTTPError: Transport failure or non-success status.
        LoginFailed: The login page reported bad credentials.
    """
    response = client.post(LOGIN_PATH, data={"j_username": username, "j_password": password})
    response.raise_for_status()
    if INVALID_LOGIN_MARKER in response.text:
        raise LoginFailed(INVALID_LOGIN_MARKER)


def login(
    username: str,
    password: str,
    base_url: str = DEFAULT_AGILEFANT_URL,
    timeout: float = 10.0,
    transport: Optional[httpx.BaseTransport] = None,
    remember_credentials: bool = True,
) -> Optional["AgilefantSession"]:
    """
    Log in to Agilefant.

    Args:
        username: Agilefant user name.
        password: Agilefant password.
        base_url: Installation root, ending in ``/``.
        timeout: Per-request timeout in seconds.
        transport: Custom httpx transport (tests pass ``httpx.MockTransport``).
        remember_credentials: Keep the password for ``relogin()``. When False
                              the session forgets it and ``relogin()`` needs
                              it passed in again.

    Returns:
        A logged-in session, or None if the login failed for any reason.
    """
    client = _new_client(base_url, timeout, transport)
    try:
        _authenticate(client, username, password)
    except LoginFailed:
        logger.warning(f"Agilefant login rejected for {username!r}")
        client.close()
        return None
    except httpx.HTTPError as e:
        logger.error(f"Agilefant login failed for {username!r}: {e}")
        client.close()
        return None

    logger.info(f"Logged in to Agilefant as {username!r}")
    return AgilefantSession(
        client, username, password if remember_credentials else None, transport=transport
    )


class AgilefantSession:
    """
    An authenticated Agilefant client.

    Paths are relative to the base URL:

        with login("jdoe", "secret") as session:
            response = session.get("ajax/iterationData.action?iterationId=42")
            response.raise_for_status()
            data = response.json()
    """

    def __init__(
        self,
        client: httpx.Client,
        username: str,
        password: Optional[str],
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = client
        self._transport = transport
        self.username = username
        self._password = password
        self._logged_in = True
        self._lock = threading.Lock()

    @property
    def is_logged_in(self) -> bool:
        return self._logged_in

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def _ensure_logged_in(self) -> None:
        if not self._logged_in:
            raise NotLoggedIn("User is not logged in.")

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """GET ``path`` with the session cookies."""
        self._ensure_logged_in()
        return self._client.get(path, **kwargs)

    def post(self, path: str, data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> httpx.Response:
        """POST form ``data`` (empty body when None) to ``path``."""
        self._ensure_logged_in()
        if data is None:
            return self._client.post(path, content=b"", **kwargs)
        return self._client.post(path, data=data, **kwargs)

    def logout(self) -> None:
        """
        End the Agilefant session.

        Raises:
            httpx.HTTPStatusError: Agilefant answered with an error status.
        """
        with self._lock:
            self._ensure_logged_in()
            response = self._client.get(LOGOUT_PATH)
            response.raise_for_status()
            self._logged_in = False
        logger.info(f"Logged out of Agilefant ({self.username!r})")

    def relogin(self, username: Optional[str] = None, password: Optional[str] = None) -> None:
        """
        Log in again on a fresh client, by default with the last credentials.

        Raises:
            AgilefantError: Still logged in, or no password given and none stored.
            LoginFailed: Credentials rejected.
            httpx.HTTPError: Agilefant unreachable or erroring.
        """
        with self._lock:
            if self._logged_in:
                raise AgilefantError("Cannot login while not logged out.")

            username = username if username is not None else self.username
            password = password if password is not None else self._password
            if password is None:
                raise AgilefantError("No stored credentials, pass a password.")

            client = _new_client(self.base_url, self._client.timeout, self._transport)
            try:
                _authenticate(client, username, password)
            except Exception:
                client.close()
                raise

            self._client.close()
            self._client = client
            self.username = username
            if self._password is not None:
                self._password = password
            self._logged_in = True
        logger.info(f"Logged in to Agilefant again as {username!r}")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AgilefantSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
