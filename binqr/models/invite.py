"""Invite model."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class InviteStatus(str, Enum):
    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"  # derived at read time, never stored
    REVOKED = "revoked"


class Invite(SQLModel, table=True):
    __tablename__ = "invites"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    code: str = Field(unique=True, index=True)
    created_by: str = Field(foreign_key="profiles.id", index=True)
    used_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    status: str = Field(default=InviteStatus.PENDING.value)
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    used_at: Optional[datetime] = None
