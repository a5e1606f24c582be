"""Session store: who is signed in right now.

One ``SessionStore`` per running client, created with the backend it talks
to and handed to whatever needs it (the route guard, views). ``start()``
runs the initial identity check and subscribes to backend auth events;
``close()`` tears both down. Results that arrive after ``close()``, or after
the identity they were fetched for has changed, are dropped.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from binqr.client.backend import AuthBackend, Result
from binqr.client.events import AuthChange, Identity
from binqr.errors import BinQRError
from binqr.schemas.auth import ProfileResponse

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class SignOutPolicy(str, Enum):
    ALWAYS_CLEAR = "always_clear"  # clear locally even if the backend call fails
    KEEP_ON_FAILURE = "keep_on_failure"


class SessionStore:
    def __init__(self, backend: AuthBackend, sign_out_policy: SignOutPolicy = SignOutPolicy.ALWAYS_CLEAR):
        self.backend = backend
        self.sign_out_policy = sign_out_policy
        self.identity: Optional[Identity] = None
        self.profile: Optional[ProfileResponse] = None
        # Loading until the first identity check resolves
        self.state = SessionState.AUTHENTICATING
        self._closed = False
        self._event_seq = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._change_handlers: list[Callable[[Optional[Identity]], None]] = []
        self._state_handlers: list[Callable[["SessionStore"], None]] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.AUTHENTICATING

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Lifecycle ---

    async def start(self) -> Optional[Identity]:
        if self._closed:
            raise RuntimeError("SessionStore is closed")
        if self._unsubscribe is None:
            self._unsubscribe = self.backend.events.subscribe(self._on_auth_event)

        self._set_state(SessionState.AUTHENTICATING)
        identity = await self.get_current_identity()
        if identity:
            await self.refresh_profile()
        return identity

    async def close(self) -> None:
        self._closed = True
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._change_handlers.clear()
        self._state_handlers.clear()
        if self.state == SessionState.AUTHENTICATING:
            # An identity check was still in flight; its result is discarded
            self.state = SessionState.ANONYMOUS

    async def settle(self) -> None:
        """Wait for event-triggered profile refreshes still in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Subscriptions ---

    def subscribe_to_changes(self, handler: Callable[[Optional[Identity]], None]) -> Callable[[], None]:
        """Call ``handler(identity)`` for every backend sign-in, sign-out or token refresh."""
        self._change_handlers.append(handler)
        return lambda: self._change_handlers.remove(handler) if handler in self._change_handlers else None

    def on_state_change(self, handler: Callable[["SessionStore"], None]) -> Callable[[], None]:
        """Call ``handler(store)`` whenever identity, loading state or profile changes."""
        self._state_handlers.append(handler)
        return lambda: self._state_handlers.remove(handler) if handler in self._state_handlers else None

    def _notify_state(self) -> None:
        for handler in list(self._state_handlers):
            handler(self)

    def _set_state(self, state: SessionState) -> None:
        if state != self.state:
            self.state = state
            self._notify_state()

    def _set_identity(self, identity: Optional[Identity]) -> None:
        previous = self.identity
        self.identity = identity
        if identity is None or previous is None or previous.id != identity.id:
            self.profile = None
        self.state = SessionState.AUTHENTICATED if identity else SessionState.ANONYMOUS
        self._notify_state()

    def _on_auth_event(self, change: AuthChange) -> None:
        if self._closed:
            return
        self._event_seq += 1
        logger.debug("Auth event %s", change.event.value)
        self._set_identity(change.identity)
        if change.identity:
            self._spawn(self.refresh_profile())
        for handler in list(self._change_handlers):
            handler(change.identity)

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running loop; skipping background profile refresh")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Operations ---

    async def get_current_identity(self) -> Optional[Identity]:
        """Ask the backend who is signed in. Failures read as signed out."""
        seq = self._event_seq
        try:
            result = await self.backend.get_user()
        except Exception as e:
            logger.error("Identity check raised: %s", e)
            result = Result(error=BinQRError(str(e)))
        if result.error:
            logger.warning("Identity check failed: %s", result.error.message)
        identity = None if result.error else result.data

        if self._closed or seq != self._event_seq:
            # A newer auth event already decided the state
            return identity
        self._set_identity(identity)
        return identity

    async def refresh_profile(self) -> Optional[ProfileResponse]:
        """Re-fetch the profile of the current identity; keep the old one on failure."""
        identity = self.identity
        if identity is None:
            return None
        try:
            result = await self.backend.get_profile(identity.id)
        except Exception as e:
            logger.error("Profile fetch raised: %s", e)
            result = Result(error=BinQRError(str(e)))

        if self._closed or self.identity is None or self.identity.id != identity.id:
            return None
        if result.error or result.data is None:
            logger.warning(
                "Profile refresh failed for %s: %s",
                identity.id,
                result.error.message if result.error else "no profile",
            )
            return self.profile
        self.profile = result.data
        self._notify_state()
        return self.profile

    async def sign_out(self) -> Result[None]:
        """Sign out at the backend, then locally according to ``sign_out_policy``."""
        try:
            result = await self.backend.sign_out()
        except Exception as e:
            logger.error("Sign-out raised: %s", e)
            result = Result(error=BinQRError(str(e)))

        if result.error:
            if self.sign_out_policy == SignOutPolicy.KEEP_ON_FAILURE:
                logger.warning("Backend sign-out failed, keeping session: %s", result.error.message)
                return result
            logger.warning("Backend sign-out failed, clearing session anyway: %s", result.error.message)
            self.backend.clear_session()

        if self._closed:
            return result
        self._event_seq += 1
        self._set_identity(None)
        return result
