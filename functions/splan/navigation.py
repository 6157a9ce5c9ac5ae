"""
Auth-gated navigation: which screen tree a client shows for a session.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class AuthStatus(str, enum.Enum):
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Navigator:
    name: str
    screens: tuple[str, ...]


LOADING_NAVIGATOR = Navigator(name="Loading", screens=("Loading",))
AUTH_NAVIGATOR = Navigator(name="Auth", screens=("Login", "Register"))
MAIN_NAVIGATOR = Navigator(
    name="Main",
    screens=("Dashboard", "Goals", "Sprints", "Tasks", "AIChat", "Profile"),
)


@dataclass
class SessionState:
    """Session as held by the client; loaded from storage on start-up."""

    is_loading: bool = True
    token: Optional[str] = None
    user: Optional[dict] = None

    @property
    def status(self) -> AuthStatus:
        if self.is_loading:
            return AuthStatus.AUTHENTICATING
        if self.token:
            return AuthStatus.AUTHENTICATED
        return AuthStatus.UNAUTHENTICATED


def resolve_navigator(session: SessionState) -> Navigator:
    status = session.status
    if status is AuthStatus.AUTHENTICATING:
        return LOADING_NAVIGATOR
    if status is AuthStatus.AUTHENTICATED:
        return MAIN_NAVIGATOR
    return AUTH_NAVIGATOR
