"""Invite schemas."""

from typing import Optional

from pydantic import BaseModel


class InviteValidationResponse(BaseModel):
    valid: bool
    message: str


class InviteResponse(BaseModel):
    id: str
    code: str
    created_by: str
    used_by: Optional[str]
    status: str  # 'pending' | 'used' | 'expired' | 'revoked'
    expires_at: str
    created_at: str
    used_at: Optional[str]


class InviteListResponse(BaseModel):
    invites_remaining: int
    invites: list[InviteResponse]
