"""Authentication, password and profile API endpoints."""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from binqr.api.deps import get_current_user, http_error
from binqr.config import settings
from binqr.database import get_session
from binqr.errors import BinQRError
from binqr.models.user import Profile
from binqr.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    IdentityResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    TokenResponse,
    UpdatePasswordRequest,
)
from binqr.services import auth_service
from binqr.utils.dates import to_iso

router = APIRouter(tags=["auth"])


def _profile_to_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        avatar_url=profile.avatar_url,
        invite_code=profile.invite_code,
        invited_by=profile.invited_by,
        invites_remaining=profile.invites_remaining,
        created_at=to_iso(profile.created_at) or "",
        updated_at=to_iso(profile.updated_at) or "",
    )


@router.post("/auth/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(request: SignUpRequest, session: Session = Depends(get_session)):
    """Create an account with an invite code."""
    try:
        tokens = auth_service.sign_up(
            email=request.email,
            password=request.password,
            confirm_password=request.confirm_password,
            invite_code=request.invite_code,
            full_name=request.full_name,
            session=session,
        )
    except BinQRError as e:
        raise http_error(e)
    return TokenResponse(**tokens.__dict__)


@router.post("/auth/login", response_model=TokenResponse)
def login(request: SignInRequest, session: Session = Depends(get_session)):
    try:
        tokens = auth_service.sign_in(request.email, request.password, session)
    except BinQRError as e:
        raise http_error(e)
    return TokenResponse(**tokens.__dict__)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh_token(request: RefreshRequest, session: Session = Depends(get_session)):
    """Refresh an access token using a refresh token."""
    try:
        tokens = auth_service.refresh_access_token(request.refresh_token, session)
    except BinQRError as e:
        raise http_error(e)
    return TokenResponse(**tokens.__dict__)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Logout: invalidate all of the user's refresh tokens."""
    try:
        auth_service.sign_out(user.id, session)
    except BinQRError as e:
        raise http_error(e)


@router.get("/auth/user", response_model=IdentityResponse)
def current_identity(user: Profile = Depends(get_current_user)):
    """The authenticated identity behind the bearer token."""
    return IdentityResponse(
        id=user.id,
        email=user.email,
        metadata={"full_name": user.full_name} if user.full_name else {},
    )


@router.post("/auth/password/forgot", response_model=ForgotPasswordResponse)
def forgot_password(request: ForgotPasswordRequest, session: Session = Depends(get_session)):
    """Start password recovery. Always answers the same way for unknown emails."""
    try:
        token = auth_service.request_password_reset(request.email, session)
    except BinQRError as e:
        raise http_error(e)
    return ForgotPasswordResponse(
        message="If an account exists for this email, a reset link has been sent",
        recovery_token=token if settings.debug else None,
    )


@router.post("/auth/password/reset", response_model=TokenResponse)
def reset_password(request: ResetPasswordRequest, session: Session = Depends(get_session)):
    try:
        tokens = auth_service.reset_password(
            request.token, request.password, request.confirm_password, session
        )
    except BinQRError as e:
        raise http_error(e)
    return TokenResponse(**tokens.__dict__)


@router.post("/auth/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    request: UpdatePasswordRequest,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        auth_service.update_password(user, request.password, request.confirm_password, session)
    except BinQRError as e:
        raise http_error(e)


@router.get("/users/me", response_model=ProfileResponse)
def get_my_profile(user: Profile = Depends(get_current_user)):
    """Get current user's profile."""
    return _profile_to_response(user)


@router.patch("/users/me", response_model=ProfileResponse)
def update_my_profile(
    request: ProfileUpdateRequest,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Update current user's profile."""
    try:
        profile = auth_service.update_profile(
            user, session, full_name=request.full_name, avatar_url=request.avatar_url
        )
    except BinQRError as e:
        raise http_error(e)
    return _profile_to_response(profile)
