"""Invite API endpoints."""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from binqr.api.deps import get_current_user, http_error
from binqr.database import get_session
from binqr.errors import BinQRError
from binqr.models.invite import Invite
from binqr.models.user import Profile
from binqr.schemas.invite import InviteListResponse, InviteResponse, InviteValidationResponse
from binqr.services import invite_service
from binqr.utils.dates import to_iso, utcnow

router = APIRouter(prefix="/invites", tags=["invites"])


def _invite_to_response(invite: Invite, now=None) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        code=invite.code,
        created_by=invite.created_by,
        used_by=invite.used_by,
        status=invite_service.effective_status(invite.status, invite.expires_at, now).value,
        expires_at=to_iso(invite.expires_at) or "",
        created_at=to_iso(invite.created_at) or "",
        used_at=to_iso(invite.used_at),
    )


@router.get("/validate", response_model=InviteValidationResponse)
def validate_invite(code: str = Query(default=""), session: Session = Depends(get_session)):
    """Check an invite code. No auth required; never errors."""
    result = invite_service.validate_code(code, session)
    return InviteValidationResponse(valid=result.valid, message=result.message)


@router.get("", response_model=InviteListResponse)
def list_invites(
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Invites minted by the current user, newest first."""
    try:
        invites = invite_service.list_invites(user.id, session)
    except BinQRError as e:
        raise http_error(e)
    now = utcnow()
    return InviteListResponse(
        invites_remaining=user.invites_remaining,
        invites=[_invite_to_response(i, now) for i in invites],
    )


@router.post("", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
def create_invite(
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        invite = invite_service.create_invite(user.id, session)
    except BinQRError as e:
        raise http_error(e)
    return _invite_to_response(invite)


@router.post("/{invite_id}/revoke", response_model=InviteResponse)
def revoke_invite(
    invite_id: str,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        invite = invite_service.revoke_invite(invite_id, user.id, session)
    except BinQRError as e:
        raise http_error(e)
    return _invite_to_response(invite)
