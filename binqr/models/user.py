"""Profile model."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint("invites_remaining >= 0", name="ck_invites_remaining"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    invite_code: Optional[str] = None  # code that created this profile
    invited_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    invites_remaining: int = Field(default=0)
    token_version: int = Field(default=0)  # bumped on sign-out to kill refresh tokens
    recovery_token_hash: Optional[str] = None
    recovery_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
