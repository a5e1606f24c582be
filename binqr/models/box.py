"""Location, Box and BoxContent models."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Location(SQLModel, table=True):
    __tablename__ = "locations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str
    description: Optional[str] = None
    user_id: str = Field(foreign_key="profiles.id", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Box(SQLModel, table=True):
    __tablename__ = "boxes"

    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    qr_code: str = Field(unique=True, index=True)
    image_url: Optional[str] = None
    location_id: str = Field(foreign_key="locations.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    ai_analysis: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BoxContent(SQLModel, table=True):
    __tablename__ = "box_contents"

    id: Optional[int] = Field(default=None, primary_key=True)
    box_id: str = Field(foreign_key="boxes.id", index=True)
    position: int  # preserves the user's ordering
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
