"""BinQRClient against the real app over an in-process ASGI transport."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest

from binqr.client.backend import BinQRClient
from binqr.client.events import AuthEvent
from binqr.client.session import SessionState, SessionStore
from binqr.config import settings
from binqr.errors import AuthError, LocationHasBoxes, NoInvitesRemaining, PersistenceError
from binqr.main import app

from conftest import PASSWORD

BOX_ID = "0b6f4a52-3c1e-4b7e-9d5a-6e2f1c8a7d44"


@pytest.fixture
def make_client(override_session):
    def _make(transport=None):
        return BinQRClient(
            base_url="http://binqr.test",
            transport=transport or httpx.ASGITransport(app=app),
        )

    return _make


def run(coro):
    return asyncio.run(coro)


def test_sign_in_emits_event_and_loads_identity(make_client, make_profile):
    owner = make_profile()

    async def scenario():
        client = make_client()
        events = []
        client.events.subscribe(lambda change: events.append(change.event))

        result = await client.sign_in("owner@example.com", PASSWORD)
        assert result.ok
        assert result.data.id == owner.id
        assert events == [AuthEvent.SIGNED_IN]

        profile = await client.get_profile(owner.id)
        assert profile.data.invites_remaining == 5

        bad = await client.get_profile("someone-else")
        assert isinstance(bad.error, AuthError)
        await client.aclose()

    run(scenario())


def test_wrong_password_is_auth_error(make_client, make_profile):
    make_profile()

    async def scenario():
        client = make_client()
        result = await client.sign_in("owner@example.com", "nope-nope")
        assert isinstance(result.error, AuthError)
        assert result.error.message == "Invalid login credentials"
        assert client.access_token is None
        await client.aclose()

    run(scenario())


def test_signed_out_client_has_no_user(make_client):
    async def scenario():
        client = make_client()
        result = await client.get_user()
        assert result.ok
        assert result.data is None
        assert (await client.create_invite()).error is not None
        await client.aclose()

    run(scenario())


def test_invite_and_sign_up(make_client, make_profile):
    make_profile(invites=1)

    async def scenario():
        owner = make_client()
        await owner.sign_in("owner@example.com", PASSWORD)
        invite = (await owner.create_invite()).data
        assert invite.status == "pending"
        assert isinstance((await owner.create_invite()).error, NoInvitesRemaining)

        check = await owner.validate_invite_code(invite.code)
        assert check.valid

        friend = make_client()
        identity = await friend.sign_up("pal@example.com", "pal-pass", "pal-pass", invite.code)
        assert identity.data.email == "pal@example.com"

        listing = (await owner.list_invites()).data
        assert listing.invites_remaining == 0
        assert listing.invites[0].status == "used"
        await owner.aclose()
        await friend.aclose()

    run(scenario())


def test_validate_code_when_server_unreachable(make_client):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        client = make_client(httpx.MockTransport(refuse))
        result = await client.validate_invite_code("ABCD2345")
        assert not result.valid
        assert result.message == "Error validating invite code"

        failed = await client.list_boxes()
        assert isinstance(failed.error, PersistenceError)
        assert failed.data == []
        await client.aclose()

    run(scenario())


def test_boxes_round_trip(make_client, make_profile):
    make_profile()

    async def scenario():
        client = make_client()
        await client.sign_in("owner@example.com", PASSWORD)

        shelf = (await client.save_location("Shelf")).data
        saved = await client.save_box(BOX_ID, "Books", shelf.id, ["novels", "atlas"])
        assert saved.data.qr_code == f"BinQR:{BOX_ID}"

        found = await client.find_box_by_code(saved.data.qr_code)
        assert found.data.contents == ["novels", "atlas"]

        missing = await client.find_box_by_code("BinQR:unknown")
        assert missing.ok
        assert missing.data is None

        updated = await client.update_box_contents(BOX_ID, ["atlas"])
        assert updated.data.contents == ["atlas"]

        refused = await client.delete_location(shelf.id)
        assert isinstance(refused.error, LocationHasBoxes)

        assert (await client.delete_box(BOX_ID)).ok
        assert (await client.delete_location(shelf.id)).ok
        await client.aclose()

    run(scenario())


def test_expired_access_token_is_refreshed(make_client, make_profile):
    make_profile()

    async def scenario():
        client = make_client()
        await client.sign_in("owner@example.com", PASSWORD)
        events = []
        client.events.subscribe(lambda change: events.append(change.event))

        client.access_token = "stale"
        result = await client.list_locations()
        assert result.ok
        assert events == [AuthEvent.TOKEN_REFRESHED]
        assert client.access_token != "stale"
        await client.aclose()

    run(scenario())


def test_session_store_over_client(make_client, make_profile):
    owner = make_profile()

    async def scenario():
        client = make_client()
        store = SessionStore(client)
        assert await store.start() is None

        await client.sign_in("owner@example.com", PASSWORD)
        await store.settle()
        assert store.state == SessionState.AUTHENTICATED
        assert store.identity.id == owner.id
        assert store.profile.email == "owner@example.com"

        result = await store.sign_out()
        assert result.ok
        assert store.identity is None
        assert client.access_token is None
        await store.close()
        await client.aclose()

    run(scenario())


def _expired_access_token(user_id: str) -> str:
    payload = {
        "sub": user_id,
        "email": "owner@example.com",
        "exp": datetime.now(timezone.utc) - timedelta(minutes=5),
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_sign_out_with_expired_access_token_revokes_session(make_client, make_profile):
    owner = make_profile()

    async def scenario():
        client = make_client()
        store = SessionStore(client)
        await client.sign_in("owner@example.com", PASSWORD)
        await store.start()
        old_refresh = client.refresh_token

        client.access_token = _expired_access_token(owner.id)
        result = await store.sign_out()
        await store.settle()
        assert result.ok
        assert store.identity is None
        assert client.access_token is None

        client.refresh_token = old_refresh
        refreshed = await client.refresh_session()
        assert isinstance(refreshed.error, AuthError)
        assert client.refresh_token is None
        await store.close()
        await client.aclose()

    run(scenario())


def test_rejected_fresh_token_does_not_refresh_again():
    calls = {"refresh": 0, "user": 0}

    def handler(request):
        if request.url.path.endswith("/auth/refresh"):
            calls["refresh"] += 1
            return httpx.Response(200, json={
                "user_id": "u1",
                "access_token": "fresh",
                "refresh_token": "fresh-refresh",
                "token_type": "bearer",
            })
        calls["user"] += 1
        return httpx.Response(401, json={"detail": "Invalid or expired token"})

    async def scenario():
        client = BinQRClient(base_url="http://binqr.test", transport=httpx.MockTransport(handler))
        client.access_token = "stale"
        client.refresh_token = "old-refresh"
        events = []
        client.events.subscribe(lambda change: events.append(change.event))

        result = await client.get_user()
        assert isinstance(result.error, AuthError)
        assert calls == {"refresh": 1, "user": 2}
        assert AuthEvent.TOKEN_REFRESHED not in events
        await client.aclose()

    run(scenario())
