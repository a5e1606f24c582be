"""Route guard: which pages need a session, and which ones a session skips."""

import logging
from enum import Enum
from typing import Callable, Mapping, Optional
from urllib.parse import parse_qs, quote

from binqr.client.session import SessionStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
HOME_PATH = "/"
RESET_PASSWORD_PATH = "/reset-password"

PUBLIC_ROUTES = frozenset({"/login", "/signup", "/forgot-password", RESET_PASSWORD_PATH})
PROTECTED_ROUTES = frozenset({HOME_PATH, "/create", "/scan", "/search", "/locations", "/settings"})


class RouteKind(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    UNRESTRICTED = "unrestricted"


def classify_route(path: str) -> RouteKind:
    if path in PUBLIC_ROUTES:
        return RouteKind.PUBLIC
    if path in PROTECTED_ROUTES:
        return RouteKind.PROTECTED
    return RouteKind.UNRESTRICTED


def login_redirect(path: str) -> str:
    return f"{LOGIN_PATH}?redirect={quote(path, safe='')}"


def evaluate_route(path: str, is_authenticated: bool, is_loading: bool) -> Optional[str]:
    """Where to send the user instead of ``path``, or None to stay."""
    if is_loading:
        return None

    kind = classify_route(path)
    if not is_authenticated and kind == RouteKind.PROTECTED:
        return login_redirect(path)
    # Recovery links land on /reset-password even with a live session
    if is_authenticated and kind == RouteKind.PUBLIC and path != RESET_PASSWORD_PATH:
        return HOME_PATH
    return None


def resolve_post_login_redirect(query: str | Mapping[str, str] | None) -> str:
    """Read ``redirect`` from a login URL query; local paths only, default home."""
    if query is None:
        return HOME_PATH
    if isinstance(query, str):
        values = parse_qs(query.lstrip("?")).get("redirect", [])
        target = values[0] if values else ""
    else:
        target = query.get("redirect") or ""

    if not target.startswith("/") or target.startswith("//"):
        return HOME_PATH
    return target


class RouteGuard:
    """Re-checks the current path on every navigation and every session change."""

    def __init__(self, store: SessionStore, navigate: Callable[[str], None], path: str = HOME_PATH):
        self.store = store
        self.navigate = navigate
        self.path = path
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> Optional[str]:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.on_state_change(lambda _store: self.evaluate())
        return self.evaluate()

    def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def set_path(self, path: str) -> Optional[str]:
        self.path = path
        return self.evaluate()

    def evaluate(self) -> Optional[str]:
        target = evaluate_route(self.path, self.store.is_authenticated, self.store.is_loading)
        if target:
            logger.debug("Redirecting %s -> %s", self.path, target)
            self.navigate(target)
        return target
