"""Auth event channel: push notifications about sign-in state."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"
    USER_UPDATED = "user_updated"
    PASSWORD_RECOVERY = "password_recovery"


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AuthChange:
    event: AuthEvent
    identity: Optional[Identity]


class AuthEventChannel:
    """Delivers auth changes to subscribers, in emission order."""

    def __init__(self):
        self._handlers: list[Callable[[AuthChange], None]] = []

    def subscribe(self, handler: Callable[[AuthChange], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: AuthEvent, identity: Optional[Identity]) -> None:
        change = AuthChange(event=event, identity=identity)
        # Snapshot: handlers may unsubscribe while being notified
        for handler in list(self._handlers):
            try:
                handler(change)
            except Exception:
                logger.exception("Auth event handler failed for %s", event.value)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)
