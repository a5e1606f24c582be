"""Session store tests against an in-memory fake backend."""

import asyncio

import pytest

from binqr.client.backend import Result
from binqr.client.events import AuthEvent, AuthEventChannel, Identity
from binqr.client.guard import RouteGuard
from binqr.client.session import SessionState, SessionStore, SignOutPolicy
from binqr.errors import AuthError, PersistenceError
from binqr.schemas.auth import ProfileResponse

ALICE = Identity(id="u-alice", email="alice@example.com")
BOB = Identity(id="u-bob", email="bob@example.com")


def _profile(identity: Identity, invites: int = 5) -> ProfileResponse:
    return ProfileResponse(
        id=identity.id,
        email=identity.email,
        full_name=None,
        avatar_url=None,
        invite_code=None,
        invited_by=None,
        invites_remaining=invites,
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )


class FakeBackend:
    def __init__(self, identity=None):
        self.events = AuthEventChannel()
        self.identity = identity
        self.user_error = None
        self.profile_error = None
        self.sign_out_error = None
        self.cleared = False
        self.invites = 5
        self.user_gate: asyncio.Event | None = None

    async def get_user(self):
        if self.user_gate:
            await self.user_gate.wait()
        if self.user_error:
            raise self.user_error
        return Result(data=self.identity)

    async def get_profile(self, user_id):
        if self.profile_error:
            return Result(error=self.profile_error)
        return Result(data=_profile(Identity(id=user_id, email=f"{user_id}@example.com"), self.invites))

    async def sign_out(self):
        if self.sign_out_error:
            return Result(error=self.sign_out_error)
        self.identity = None
        self.events.emit(AuthEvent.SIGNED_OUT, None)
        return Result()

    def clear_session(self):
        self.cleared = True
        self.identity = None


def run(coro):
    return asyncio.run(coro)


def test_start_signed_in_loads_profile():
    async def scenario():
        backend = FakeBackend(ALICE)
        store = SessionStore(backend)
        states = []
        store.on_state_change(lambda s: states.append(s.state))
        assert store.is_loading

        identity = await store.start()
        assert identity == ALICE
        assert store.state == SessionState.AUTHENTICATED
        assert store.profile.id == ALICE.id
        assert SessionState.ANONYMOUS not in states
        assert states[-1] == SessionState.AUTHENTICATED
        await store.close()

    run(scenario())


def test_start_signed_out():
    async def scenario():
        store = SessionStore(FakeBackend())
        assert await store.start() is None
        assert store.state == SessionState.ANONYMOUS
        assert not store.is_authenticated
        assert store.profile is None
        await store.close()

    run(scenario())


def test_identity_failure_reads_as_signed_out():
    async def scenario():
        backend = FakeBackend(ALICE)
        backend.user_error = RuntimeError("network down")
        store = SessionStore(backend)

        assert await store.start() is None
        assert store.state == SessionState.ANONYMOUS
        assert not store.is_loading
        await store.close()

    run(scenario())


def test_events_update_identity_in_order():
    async def scenario():
        backend = FakeBackend()
        store = SessionStore(backend)
        await store.start()
        seen = []
        unsubscribe = store.subscribe_to_changes(seen.append)

        backend.events.emit(AuthEvent.SIGNED_IN, ALICE)
        backend.events.emit(AuthEvent.TOKEN_REFRESHED, ALICE)
        backend.events.emit(AuthEvent.SIGNED_OUT, None)
        backend.events.emit(AuthEvent.SIGNED_IN, BOB)
        await store.settle()

        assert seen == [ALICE, ALICE, None, BOB]
        assert store.identity == BOB
        assert store.profile.id == BOB.id

        unsubscribe()
        backend.events.emit(AuthEvent.SIGNED_OUT, None)
        assert len(seen) == 4
        assert store.identity is None
        await store.close()

    run(scenario())


def test_refresh_profile_failure_keeps_cached_profile():
    async def scenario():
        backend = FakeBackend(ALICE)
        store = SessionStore(backend)
        await store.start()
        cached = store.profile

        backend.profile_error = PersistenceError("down")
        assert await store.refresh_profile() is cached
        assert store.profile is cached

        backend.profile_error = None
        backend.invites = 2
        assert (await store.refresh_profile()).invites_remaining == 2
        await store.close()

    run(scenario())


def test_refresh_profile_without_identity_is_noop():
    async def scenario():
        store = SessionStore(FakeBackend())
        await store.start()
        assert await store.refresh_profile() is None
        await store.close()

    run(scenario())


def test_sign_out_success():
    async def scenario():
        backend = FakeBackend(ALICE)
        store = SessionStore(backend)
        await store.start()

        result = await store.sign_out()
        assert result.ok
        assert store.identity is None
        assert store.profile is None
        assert not backend.cleared
        await store.close()

    run(scenario())


def test_sign_out_failure_clears_by_default():
    async def scenario():
        backend = FakeBackend(ALICE)
        backend.sign_out_error = PersistenceError("Could not reach the server")
        store = SessionStore(backend)
        await store.start()

        result = await store.sign_out()
        assert isinstance(result.error, PersistenceError)
        assert store.identity is None
        assert store.state == SessionState.ANONYMOUS
        assert backend.cleared
        await store.close()

    run(scenario())


def test_sign_out_failure_kept_when_policy_says_so():
    async def scenario():
        backend = FakeBackend(ALICE)
        backend.sign_out_error = AuthError("backend refused")
        store = SessionStore(backend, sign_out_policy=SignOutPolicy.KEEP_ON_FAILURE)
        await store.start()

        result = await store.sign_out()
        assert not result.ok
        assert store.identity == ALICE
        assert store.profile is not None
        assert not backend.cleared
        await store.close()

    run(scenario())


def test_result_after_close_is_discarded():
    async def scenario():
        backend = FakeBackend(ALICE)
        backend.user_gate = asyncio.Event()
        store = SessionStore(backend)

        pending = asyncio.ensure_future(store.start())
        await asyncio.sleep(0)
        assert store.is_loading

        await store.close()
        assert store.state == SessionState.ANONYMOUS
        assert not store.is_loading
        backend.user_gate.set()
        await pending

        assert store.identity is None
        assert store.state == SessionState.ANONYMOUS
        assert store.closed
        assert backend.events.subscriber_count == 0

    run(scenario())


def test_event_during_initial_check_wins():
    async def scenario():
        backend = FakeBackend(None)
        backend.user_gate = asyncio.Event()
        store = SessionStore(backend)

        pending = asyncio.ensure_future(store.start())
        await asyncio.sleep(0)
        backend.events.emit(AuthEvent.SIGNED_IN, ALICE)
        backend.user_gate.set()
        await pending
        await store.settle()

        assert store.identity == ALICE
        assert store.state == SessionState.AUTHENTICATED
        await store.close()

    run(scenario())


def test_closed_store_cannot_restart():
    async def scenario():
        store = SessionStore(FakeBackend())
        await store.close()
        with pytest.raises(RuntimeError):
            await store.start()

    run(scenario())


def test_guard_follows_store():
    async def scenario():
        backend = FakeBackend()
        store = SessionStore(backend)
        visited = []
        guard = RouteGuard(store, visited.append, path="/settings")

        await store.start()
        guard.start()
        assert visited == ["/login?redirect=%2Fsettings"]

        guard.set_path("/login")
        backend.events.emit(AuthEvent.SIGNED_IN, ALICE)
        await store.settle()
        assert visited[-1] == "/"
        await store.close()

    run(scenario())


def test_guard_waits_for_initial_check():
    async def scenario():
        backend = FakeBackend(ALICE)
        backend.user_gate = asyncio.Event()
        store = SessionStore(backend)
        visited = []
        guard = RouteGuard(store, visited.append, path="/create")

        assert guard.start() is None
        pending = asyncio.ensure_future(store.start())
        await asyncio.sleep(0)
        assert store.is_loading
        assert visited == []

        backend.user_gate.set()
        await pending
        assert store.is_authenticated
        assert visited == []
        await store.close()

    run(scenario())


def test_guard_redirects_once_check_finds_no_session():
    async def scenario():
        store = SessionStore(FakeBackend())
        visited = []
        guard = RouteGuard(store, visited.append, path="/create")

        guard.start()
        assert visited == []
        await store.start()
        assert visited == ["/login?redirect=%2Fcreate"]
        await store.close()

    run(scenario())
