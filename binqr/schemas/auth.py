"""Auth and profile request/response schemas."""

from typing import Optional

from pydantic import BaseModel


# --- Sign-up / sign-in ---

class SignUpRequest(BaseModel):
    email: str
    password: str
    confirm_password: str
    invite_code: str
    full_name: Optional[str] = None


class SignInRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    user_id: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


# --- Passwords ---

class ForgotPasswordRequest(BaseModel):
    email: str


class ForgotPasswordResponse(BaseModel):
    message: str
    recovery_token: Optional[str] = None  # only returned in debug mode


class ResetPasswordRequest(BaseModel):
    token: str
    password: str
    confirm_password: str


class UpdatePasswordRequest(BaseModel):
    password: str
    confirm_password: str


# --- Identity & profile ---

class IdentityResponse(BaseModel):
    id: str
    email: str
    metadata: dict = {}


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str]
    avatar_url: Optional[str]
    invite_code: Optional[str]
    invited_by: Optional[str]
    invites_remaining: int
    created_at: str
    updated_at: str


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
