"""Account business logic: sign-up, sign-in, tokens, profile and passwords.

Sign-up is invite gated. The new profile and the consumed invite are written
in one transaction so a failed sign-up never burns a code and a consumed code
always has an account behind it.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from binqr.config import settings
from binqr.errors import AccountExists, AuthError, InviteError, PersistenceError, ValidationError
from binqr.models.user import Profile
from binqr.services.invite_service import consume_code
from binqr.utils.dates import as_utc, utcnow
from binqr.utils.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_recovery_token,
    hash_password,
    hash_token,
    verify_password,
)

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    user_id: str
    access_token: str
    refresh_token: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str) -> None:
    if not email:
        raise ValidationError("Email is required")
    if "@" not in email:
        raise ValidationError("Please enter a valid email address")


def validate_new_password(password: str, confirm_password: str) -> None:
    if not password or not confirm_password:
        raise ValidationError("Please fill in all required fields")
    if len(password) < settings.password_min_length:
        raise ValidationError(
            f"Password must be at least {settings.password_min_length} characters long"
        )
    if password != confirm_password:
        raise ValidationError("Passwords do not match")


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to %s: %s", action, e)
        raise PersistenceError(f"Failed to {action}") from e


def _issue_tokens(profile: Profile) -> TokenPair:
    return TokenPair(
        user_id=profile.id,
        access_token=create_access_token(profile.id, profile.email),
        refresh_token=create_refresh_token(profile.id, profile.token_version),
    )


def sign_up(
    email: str,
    password: str,
    confirm_password: str,
    invite_code: str,
    session: Session,
    full_name: str | None = None,
) -> TokenPair:
    """Create an account by consuming an invite code.

    The code is re-validated here by the consume step itself, whatever the
    form checked earlier.
    """
    email = normalize_email(email)
    invite_code = invite_code.strip()
    if not email or not invite_code:
        raise ValidationError("Please fill in all required fields")
    validate_email(email)
    validate_new_password(password, confirm_password)

    if session.exec(select(Profile).where(Profile.email == email)).first():
        raise AccountExists()

    profile = Profile(
        email=email,
        password_hash=hash_password(password),
        full_name=(full_name or "").strip() or None,
        invite_code=invite_code,
        invites_remaining=settings.initial_invites,
    )
    try:
        session.add(profile)
        session.flush()
        invite = consume_code(invite_code, profile.id, session)
        profile.invited_by = invite.created_by
        session.commit()
    except InviteError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise AccountExists() from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Sign-up failed for %s: %s", email, e)
        raise PersistenceError("Failed to create account") from e

    session.refresh(profile)
    logger.info("Account %s created with invite %s", profile.id, invite.id)
    return _issue_tokens(profile)


def create_account(
    email: str,
    password: str,
    session: Session,
    full_name: str | None = None,
    invites: int | None = None,
) -> Profile:
    """Create an account without an invite. For bootstrapping the first users."""
    email = normalize_email(email)
    validate_email(email)
    validate_new_password(password, password)
    if session.exec(select(Profile).where(Profile.email == email)).first():
        raise AccountExists()

    profile = Profile(
        email=email,
        password_hash=hash_password(password),
        full_name=(full_name or "").strip() or None,
        invites_remaining=settings.initial_invites if invites is None else max(invites, 0),
    )
    try:
        session.add(profile)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise AccountExists() from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Bootstrap account failed for %s: %s", email, e)
        raise PersistenceError("Failed to create account") from e
    session.refresh(profile)
    logger.info("Bootstrap account %s created", profile.id)
    return profile


def sign_in(email: str, password: str, session: Session) -> TokenPair:
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("Please fill in all required fields")
    validate_email(email)

    profile = session.exec(select(Profile).where(Profile.email == email)).first()
    if not profile or not verify_password(password, profile.password_hash):
        raise AuthError("Invalid login credentials")
    return _issue_tokens(profile)


def refresh_access_token(refresh_token: str, session: Session) -> TokenPair:
    """Validate a refresh token and issue a new token pair."""
    try:
        payload = decode_token(refresh_token)
    except Exception:
        raise AuthError("Invalid or expired refresh token")

    if payload.get("type") != "refresh":
        raise AuthError("Invalid token type")

    profile = session.get(Profile, payload.get("sub", ""))
    if not profile:
        raise AuthError("User not found")
    if payload.get("ver") != profile.token_version:
        raise AuthError("Session has been signed out")

    return _issue_tokens(profile)


def sign_out(user_id: str, session: Session) -> None:
    """Invalidate every outstanding refresh token for the user."""
    try:
        session.exec(  # type: ignore[call-overload]
            update(Profile)
            .where(col(Profile.id) == user_id)
            .values(token_version=Profile.token_version + 1)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Sign-out failed for %s: %s", user_id, e)
        raise PersistenceError("Failed to sign out") from e


def get_profile(user_id: str, session: Session) -> Profile | None:
    return session.get(Profile, user_id)


def update_profile(
    profile: Profile,
    session: Session,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> Profile:
    if full_name is not None:
        profile.full_name = full_name.strip() or None
    if avatar_url is not None:
        profile.avatar_url = avatar_url.strip() or None
    profile.updated_at = utcnow()
    session.add(profile)
    _commit(session, "update profile")
    session.refresh(profile)
    return profile


def request_password_reset(email: str, session: Session) -> str | None:
    """Issue a recovery token. Returns None (silently) for unknown emails.

    Delivery of the token (email link to /reset-password) is left to the
    caller.
    """
    email = normalize_email(email)
    validate_email(email)

    profile = session.exec(select(Profile).where(Profile.email == email)).first()
    if not profile:
        logger.info("Password reset requested for unknown email")
        return None

    token = generate_recovery_token()
    profile.recovery_token_hash = hash_token(token)
    profile.recovery_expires_at = utcnow() + timedelta(minutes=settings.recovery_token_expire_minutes)
    session.add(profile)
    _commit(session, "start password recovery")
    return token


def reset_password(token: str, password: str, confirm_password: str, session: Session) -> TokenPair:
    """Set a new password from a recovery token. The token works once."""
    validate_new_password(password, confirm_password)

    profile = session.exec(
        select(Profile).where(Profile.recovery_token_hash == hash_token(token))
    ).first()
    if (
        not profile
        or not profile.recovery_expires_at
        or as_utc(profile.recovery_expires_at) < utcnow()
    ):
        raise AuthError("Invalid or expired recovery link")

    profile.password_hash = hash_password(password)
    profile.recovery_token_hash = None
    profile.recovery_expires_at = None
    profile.token_version += 1
    profile.updated_at = utcnow()
    session.add(profile)
    _commit(session, "reset password")
    session.refresh(profile)
    return _issue_tokens(profile)


def update_password(profile: Profile, password: str, confirm_password: str, session: Session) -> None:
    validate_new_password(password, confirm_password)
    profile.password_hash = hash_password(password)
    profile.updated_at = utcnow()
    session.add(profile)
    _commit(session, "update password")
