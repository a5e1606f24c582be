"""Invite ledger business logic.

Invite codes gate account creation. Each profile may mint a bounded number
of codes; each code is single use and expires. ``expired`` is never stored:
it is derived from ``expires_at`` whenever an invite is read.

Every state change is a conditional UPDATE whose WHERE clause restates the
precondition, so concurrent requests cannot double-spend a counter or a code.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from binqr.config import settings
from binqr.errors import (
    InvalidOrExpiredCode,
    InviteNotFound,
    InviteNotRevocable,
    NoInvitesRemaining,
    PersistenceError,
)
from binqr.models.invite import Invite, InviteStatus
from binqr.models.user import Profile
from binqr.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

# No 0/O or 1/I so codes survive being read aloud
INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_CODE_ATTEMPTS = 5


@dataclass
class InviteValidation:
    valid: bool
    message: str


def effective_status(status: str, expires_at: datetime, now: datetime | None = None) -> InviteStatus:
    """Status as seen by readers: pending invites past their expiry read as expired."""
    now = now or utcnow()
    if status == InviteStatus.PENDING.value and as_utc(expires_at) < as_utc(now):
        return InviteStatus.EXPIRED
    return InviteStatus(status)


def generate_invite_code(length: int | None = None) -> str:
    length = length or settings.invite_code_length
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(length))


def validate_code(code: str, session: Session, now: datetime | None = None) -> InviteValidation:
    """Check whether ``code`` could be consumed right now.

    Never raises: storage failures read as an invalid code so a sign-up form
    keeps working while the ledger is unavailable.
    """
    code = code.strip()
    if not code:
        return InviteValidation(valid=False, message="Invite code is required")

    try:
        invite = session.exec(select(Invite).where(Invite.code == code)).first()
    except SQLAlchemyError as e:
        logger.error("Invite validation failed: %s", e)
        return InviteValidation(valid=False, message="Error validating invite code")

    if invite and effective_status(invite.status, invite.expires_at, now) == InviteStatus.PENDING:
        return InviteValidation(valid=True, message="Valid invite code")
    return InviteValidation(valid=False, message="Invalid or expired invite code")


def _take_invite_slot(session: Session, creator_id: str, now: datetime) -> bool:
    result = session.exec(  # type: ignore[call-overload]
        update(Profile)
        .where(col(Profile.id) == creator_id, col(Profile.invites_remaining) > 0)
        .values(invites_remaining=Profile.invites_remaining - 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def create_invite(creator_id: str, session: Session, now: datetime | None = None) -> Invite:
    """Mint a pending invite for ``creator_id`` and spend one of their invites.

    The decrement and the insert share one transaction: both land or neither
    does. A code collision rolls both back and retries with a fresh code.
    """
    now = now or utcnow()

    for _ in range(_CODE_ATTEMPTS):
        try:
            if not _take_invite_slot(session, creator_id, now):
                session.rollback()
                raise NoInvitesRemaining()

            invite = Invite(
                code=generate_invite_code(),
                created_by=creator_id,
                status=InviteStatus.PENDING.value,
                expires_at=now + timedelta(days=settings.invite_expire_days),
                created_at=now,
            )
            session.add(invite)
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning("Invite code collision for %s, retrying", creator_id)
            continue
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to create invite for %s: %s", creator_id, e)
            raise PersistenceError("Failed to create invite") from e

        session.refresh(invite)
        logger.info("Invite %s created by %s", invite.id, creator_id)
        return invite

    raise PersistenceError("Could not allocate a unique invite code")


def list_invites(creator_id: str, session: Session) -> list[Invite]:
    """All invites minted by ``creator_id``, newest first."""
    try:
        return list(session.exec(
            select(Invite)
            .where(Invite.created_by == creator_id)
            .order_by(col(Invite.created_at).desc())
        ).all())
    except SQLAlchemyError as e:
        logger.error("Failed to list invites for %s: %s", creator_id, e)
        raise PersistenceError("Failed to load invites") from e


def revoke_invite(
    invite_id: str,
    requester_id: str,
    session: Session,
    now: datetime | None = None,
) -> Invite:
    """Revoke a pending invite. Anything else is rejected, including a repeat revoke."""
    now = now or utcnow()

    invite = session.get(Invite, invite_id)
    if not invite or invite.created_by != requester_id:
        raise InviteNotFound()

    try:
        result = session.exec(  # type: ignore[call-overload]
            update(Invite)
            .where(
                col(Invite.id) == invite_id,
                col(Invite.status) == InviteStatus.PENDING.value,
                col(Invite.expires_at) >= now,
            )
            .values(status=InviteStatus.REVOKED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            session.refresh(invite)
            current = effective_status(invite.status, invite.expires_at, now)
            raise InviteNotRevocable(f"Invite is already {current.value}")
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to revoke invite %s: %s", invite_id, e)
        raise PersistenceError("Failed to revoke invite") from e

    session.refresh(invite)
    logger.info("Invite %s revoked by %s", invite_id, requester_id)
    return invite


def consume_code(code: str, consumer_id: str, session: Session, now: datetime | None = None) -> Invite:
    """Mark ``code`` used by ``consumer_id`` inside the caller's transaction.

    Does not commit: account creation commits the profile and the consumed
    invite together, or rolls both back.
    """
    now = now or utcnow()
    code = code.strip()

    result = session.exec(  # type: ignore[call-overload]
        update(Invite)
        .where(
            col(Invite.code) == code,
            col(Invite.status) == InviteStatus.PENDING.value,
            col(Invite.expires_at) >= now,
        )
        .values(status=InviteStatus.USED.value, used_by=consumer_id, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidOrExpiredCode()

    return session.exec(
        select(Invite)
        .where(Invite.code == code)
        .execution_options(populate_existing=True)
    ).one()
