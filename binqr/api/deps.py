"""Common API dependencies: current user extraction, record store, error mapping."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from binqr.database import get_session
from binqr.errors import (
    AccountExists,
    AuthError,
    BinQRError,
    InviteNotFound,
    InviteNotRevocable,
    LocationHasBoxes,
    NoInvitesRemaining,
    RecordNotFound,
    ValidationError,
)
from binqr.models.user import Profile
from binqr.services.record_store import RecordStore
from binqr.services.store_factory import make_record_store
from binqr.utils.security import decode_token

bearer_scheme = HTTPBearer()

# Most specific first
_STATUS_BY_ERROR: list[tuple[type[BinQRError], int]] = [
    (AccountExists, status.HTTP_409_CONFLICT),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NoInvitesRemaining, status.HTTP_403_FORBIDDEN),
    (InviteNotFound, status.HTTP_404_NOT_FOUND),
    (InviteNotRevocable, status.HTTP_409_CONFLICT),
    (RecordNotFound, status.HTTP_404_NOT_FOUND),
    (LocationHasBoxes, status.HTTP_409_CONFLICT),
]


def http_error(e: BinQRError) -> HTTPException:
    """Translate a service error into an HTTPException with a stable error code."""
    code = status.HTTP_400_BAD_REQUEST
    for cls, mapped in _STATUS_BY_ERROR:
        if isinstance(e, cls):
            code = mapped
            break
    else:
        if e.code == "persistence_error":
            code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HTTPException(status_code=code, detail={"error": e.code, "message": e.message})


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Profile:
    """Extract and validate user from JWT access token."""
    try:
        payload = decode_token(credentials.credentials)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    user = session.get(Profile, payload["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_record_store(session: Session = Depends(get_session)) -> RecordStore:
    return make_record_store(session)
