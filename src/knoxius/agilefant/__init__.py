"""
Client for the Agilefant project-management web application.

    from knoxius.agilefant import login, get_sprint

    session = login("jdoe", "secret")
    if session is not None:
        sprint = get_sprint(session, 42)
"""

from .session import (
    AgilefantError,
    AgilefantSession,
    LoginFailed,
    NotLoggedIn,
    login,
)
from .sprint import BurndownImage, Sprint, get_burndown_image, get_sprint, get_sprints

__all__ = [
    "login",
    "AgilefantSession",
    "AgilefantError",
    "LoginFailed",
    "NotLoggedIn",
    "Sprint",
    "BurndownImage",
    "get_sprint",
    "get_sprints",
    "get_burndown_image",
]
