"""HTTP client for the BinQR API.

Every call returns a ``Result`` instead of raising, so callers can show the
error and carry on. Auth state changes (sign-in, sign-out, token refresh,
password recovery) are pushed to ``events``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, Protocol, TypeVar
from urllib.parse import quote

import httpx

from binqr.client.events import AuthEvent, AuthEventChannel, Identity
from binqr.config import settings
from binqr.errors import (
    ERRORS_BY_CODE,
    AuthError,
    BinQRError,
    PersistenceError,
    RecordNotFound,
)
from binqr.schemas.auth import ProfileResponse
from binqr.schemas.box import BoxResponse, LocationResponse
from binqr.schemas.invite import InviteListResponse, InviteResponse, InviteValidationResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    data: Optional[T] = None
    error: Optional[BinQRError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AuthBackend(Protocol):
    """What the session store needs from an auth provider."""

    events: AuthEventChannel

    async def get_user(self) -> Result[Identity]: ...

    async def get_profile(self, user_id: str) -> Result[ProfileResponse]: ...

    async def sign_out(self) -> Result[None]: ...

    def clear_session(self) -> None: ...


def _error_from_response(response: httpx.Response) -> BinQRError:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None

    if isinstance(detail, dict) and detail.get("error") in ERRORS_BY_CODE:
        return ERRORS_BY_CODE[detail["error"]](detail.get("message"))

    message = detail if isinstance(detail, str) else None
    if response.status_code == 401:
        return AuthError(message)
    if response.status_code == 404:
        return RecordNotFound(message)
    return PersistenceError(message or f"Request failed with status {response.status_code}")


class BinQRClient:
    """Async API client holding the signed-in user's tokens."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.events = AuthEventChannel()
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self._http = httpx.AsyncClient(
            base_url=(base_url or settings.client_base_url).rstrip("/") + "/api/v1",
            timeout=timeout if timeout is not None else settings.client_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- Transport ---

    def _headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, url: str, retry_auth: bool = True, **kwargs) -> Result[Any]:
        try:
            response = await self._http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            return Result(error=PersistenceError("Could not reach the server"))

        if response.status_code == 401 and retry_auth and self.refresh_token:
            refreshed = await self.refresh_session()
            if refreshed.ok:
                return await self._request(method, url, retry_auth=False, **kwargs)

        if response.is_error:
            return Result(error=_error_from_response(response))
        if response.status_code == 204:
            return Result()
        return Result(data=response.json())

    def _store_tokens(self, data: dict) -> None:
        self.access_token = data["access_token"]
        self.refresh_token = data["refresh_token"]

    def clear_session(self) -> None:
        self.access_token = None
        self.refresh_token = None

    # --- Auth ---

    async def sign_up(
        self,
        email: str,
        password: str,
        confirm_password: str,
        invite_code: str,
        full_name: str | None = None,
    ) -> Result[Identity]:
        result = await self._request("POST", "/auth/signup", retry_auth=False, json={
            "email": email,
            "password": password,
            "confirm_password": confirm_password,
            "invite_code": invite_code,
            "full_name": full_name,
        })
        return await self._finish_sign_in(result)

    async def sign_in(self, email: str, password: str) -> Result[Identity]:
        result = await self._request("POST", "/auth/login", retry_auth=False, json={
            "email": email,
            "password": password,
        })
        return await self._finish_sign_in(result)

    async def _finish_sign_in(self, result: Result[Any]) -> Result[Identity]:
        if not result.ok:
            return Result(error=result.error)
        self._store_tokens(result.data)
        identity = await self.get_user()
        if identity.ok and identity.data:
            self.events.emit(AuthEvent.SIGNED_IN, identity.data)
        return identity

    async def get_user(self) -> Result[Identity]:
        """The live identity, or ``Result(data=None)`` when signed out."""
        return await self._fetch_identity()

    async def _fetch_identity(self, retry_auth: bool = True) -> Result[Identity]:
        if not self.access_token:
            return Result()
        result = await self._request("GET", "/auth/user", retry_auth=retry_auth)
        if not result.ok:
            return Result(error=result.error)
        return Result(data=Identity(
            id=result.data["id"],
            email=result.data["email"],
            metadata=result.data.get("metadata") or {},
        ))

    async def refresh_session(self) -> Result[None]:
        if not self.refresh_token:
            return Result(error=AuthError("No session to refresh"))
        result = await self._request(
            "POST", "/auth/refresh", retry_auth=False, json={"refresh_token": self.refresh_token}
        )
        if not result.ok:
            if isinstance(result.error, AuthError):
                # Refresh token revoked or expired: the session is over
                self.clear_session()
                self.events.emit(AuthEvent.SIGNED_OUT, None)
            return Result(error=result.error)

        self._store_tokens(result.data)
        # No refresh-and-retry here: a rejected fresh token must not refresh again
        identity = await self._fetch_identity(retry_auth=False)
        if not identity.ok:
            logger.warning("Refreshed token was not accepted: %s", identity.error.message)
            return Result(error=identity.error)
        self.events.emit(AuthEvent.TOKEN_REFRESHED, identity.data)
        return Result()

    async def sign_out(self) -> Result[None]:
        """Invalidate the session on the server, then drop the local tokens.

        An expired access token is refreshed first so the server still revokes
        the refresh token. On failure the tokens are kept; the caller decides
        whether to clear.
        """
        if not self.access_token:
            return Result()
        result = await self._request("POST", "/auth/logout")
        if not result.ok:
            return Result(error=result.error)
        self.clear_session()
        self.events.emit(AuthEvent.SIGNED_OUT, None)
        return Result()

    async def reset_password_for_email(self, email: str) -> Result[None]:
        result = await self._request("POST", "/auth/password/forgot", retry_auth=False, json={"email": email})
        return Result(error=result.error)

    async def reset_password(self, token: str, password: str, confirm_password: str) -> Result[Identity]:
        """Complete recovery from a reset link; signs the user in with fresh tokens."""
        result = await self._request("POST", "/auth/password/reset", retry_auth=False, json={
            "token": token,
            "password": password,
            "confirm_password": confirm_password,
        })
        if not result.ok:
            return Result(error=result.error)
        self._store_tokens(result.data)
        identity = await self.get_user()
        self.events.emit(AuthEvent.PASSWORD_RECOVERY, identity.data)
        return identity

    async def update_password(self, password: str, confirm_password: str) -> Result[None]:
        result = await self._request("POST", "/auth/password", json={
            "password": password,
            "confirm_password": confirm_password,
        })
        return Result(error=result.error)

    # --- Profile ---

    async def get_profile(self, user_id: str) -> Result[ProfileResponse]:
        result = await self._request("GET", "/users/me")
        if not result.ok:
            return Result(error=result.error)
        profile = ProfileResponse(**result.data)
        if profile.id != user_id:
            return Result(error=AuthError("Profile does not belong to the signed-in user"))
        return Result(data=profile)

    async def update_profile(self, full_name: str | None = None, avatar_url: str | None = None) -> Result[ProfileResponse]:
        result = await self._request("PATCH", "/users/me", json={
            "full_name": full_name,
            "avatar_url": avatar_url,
        })
        if not result.ok:
            return Result(error=result.error)
        profile = ProfileResponse(**result.data)
        self.events.emit(AuthEvent.USER_UPDATED, await self._identity_or_none())
        return Result(data=profile)

    async def _identity_or_none(self) -> Identity | None:
        return (await self.get_user()).data

    # --- Invites ---

    async def validate_invite_code(self, code: str) -> InviteValidationResponse:
        """Never fails: an unreachable server reads as an invalid code."""
        result = await self._request("GET", "/invites/validate", retry_auth=False, params={"code": code})
        if not result.ok:
            return InviteValidationResponse(valid=False, message="Error validating invite code")
        return InviteValidationResponse(**result.data)

    async def create_invite(self) -> Result[InviteResponse]:
        if not self.access_token:
            return Result(error=AuthError("Must be authenticated to create invites"))
        result = await self._request("POST", "/invites")
        if not result.ok:
            return Result(error=result.error)
        return Result(data=InviteResponse(**result.data))

    async def list_invites(self) -> Result[InviteListResponse]:
        result = await self._request("GET", "/invites")
        if not result.ok:
            return Result(error=result.error)
        return Result(data=InviteListResponse(**result.data))

    async def revoke_invite(self, invite_id: str) -> Result[InviteResponse]:
        result = await self._request("POST", f"/invites/{quote(invite_id, safe='')}/revoke")
        if not result.ok:
            return Result(error=result.error)
        return Result(data=InviteResponse(**result.data))

    # --- Locations ---

    async def list_locations(self) -> Result[list[LocationResponse]]:
        result = await self._request("GET", "/locations")
        if not result.ok:
            return Result(data=[], error=result.error)
        return Result(data=[LocationResponse(**loc) for loc in result.data])

    async def save_location(self, name: str, description: str | None = None) -> Result[LocationResponse]:
        result = await self._request("POST", "/locations", json={"name": name, "description": description})
        if not result.ok:
            return Result(error=result.error)
        return Result(data=LocationResponse(**result.data))

    async def update_location(
        self, location_id: str, name: str | None = None, description: str | None = None
    ) -> Result[LocationResponse]:
        result = await self._request(
            "PATCH", f"/locations/{quote(location_id, safe='')}",
            json={"name": name, "description": description},
        )
        if not result.ok:
            return Result(error=result.error)
        return Result(data=LocationResponse(**result.data))

    async def delete_location(self, location_id: str) -> Result[None]:
        result = await self._request("DELETE", f"/locations/{quote(location_id, safe='')}")
        return Result(error=result.error)

    # --- Boxes ---

    async def list_boxes(self, query: str = "", location_id: str | None = None) -> Result[list[BoxResponse]]:
        params = {"q": query}
        if location_id:
            params["location_id"] = location_id
        result = await self._request("GET", "/boxes", params=params)
        if not result.ok:
            return Result(data=[], error=result.error)
        return Result(data=[BoxResponse(**b) for b in result.data])

    async def save_box(
        self,
        box_id: str,
        name: str,
        location_id: str,
        contents: list[str],
        description: str | None = None,
        image_url: str | None = None,
        ai_analysis: str | None = None,
    ) -> Result[BoxResponse]:
        result = await self._request("PUT", f"/boxes/{quote(box_id, safe='')}", json={
            "name": name,
            "location_id": location_id,
            "contents": contents,
            "description": description,
            "image_url": image_url,
            "ai_analysis": ai_analysis,
        })
        if not result.ok:
            return Result(error=result.error)
        return Result(data=BoxResponse(**result.data))

    async def update_box_contents(
        self, box_id: str, contents: list[str], image_url: str | None = None
    ) -> Result[BoxResponse]:
        result = await self._request(
            "PUT", f"/boxes/{quote(box_id, safe='')}/contents",
            json={"contents": contents, "image_url": image_url},
        )
        if not result.ok:
            return Result(error=result.error)
        return Result(data=BoxResponse(**result.data))

    async def delete_box(self, box_id: str) -> Result[None]:
        result = await self._request("DELETE", f"/boxes/{quote(box_id, safe='')}")
        return Result(error=result.error)

    async def find_box_by_code(self, qr_code: str) -> Result[BoxResponse]:
        """Look up a scanned payload. A miss is ``Result(data=None)``, not an error."""
        result = await self._request("GET", f"/boxes/by-code/{quote(qr_code, safe='')}")
        if isinstance(result.error, RecordNotFound):
            return Result()
        if not result.ok:
            return Result(error=result.error)
        return Result(data=BoxResponse(**result.data))
