"""Location and box schemas."""

from typing import Optional

from pydantic import BaseModel


class LocationCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None


class LocationUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class LocationResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    box_count: int
    created_at: str


class BoxSaveRequest(BaseModel):
    name: str
    location_id: str
    description: Optional[str] = None
    contents: list[str] = []
    image_url: Optional[str] = None
    ai_analysis: Optional[str] = None


class BoxContentsRequest(BaseModel):
    contents: list[str]
    image_url: Optional[str] = None


class BoxResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    qr_code: str
    image_url: Optional[str]
    location_id: str
    contents: list[str]
    ai_analysis: Optional[str]
    created_at: str
    updated_at: str
