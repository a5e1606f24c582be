"""Box/Location record contract shared by the database and local-file stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from binqr.errors import ValidationError
from binqr.utils.dates import utcnow
from binqr.utils.qr import new_box_id, qr_payload


@dataclass
class LocationRecord:
    id: str
    name: str
    user_id: str
    created_at: datetime
    description: str | None = None


@dataclass
class BoxRecord:
    id: str
    name: str
    location_id: str
    user_id: str
    qr_code: str
    contents: list[str] = field(default_factory=list)
    description: str | None = None
    image_url: str | None = None
    ai_analysis: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        user_id: str,
        name: str,
        location_id: str,
        contents: list[str] | None = None,
        box_id: str | None = None,
        **extra,
    ) -> BoxRecord:
        """New box with a fresh id and the QR payload derived from it."""
        box_id = box_id or new_box_id()
        return cls(
            id=box_id,
            name=name,
            location_id=location_id,
            user_id=user_id,
            qr_code=qr_payload(box_id),
            contents=list(contents or []),
            **extra,
        )


class RecordStore(Protocol):
    def list_locations(self, user_id: str) -> list[LocationRecord]: ...

    def save_location(self, user_id: str, name: str, description: str | None = None) -> LocationRecord: ...

    def update_location(
        self, user_id: str, location_id: str, name: str | None = None, description: str | None = None
    ) -> LocationRecord: ...

    def delete_location(self, user_id: str, location_id: str) -> None: ...

    def count_boxes_for_location(self, user_id: str, location_id: str) -> int: ...

    def list_boxes(self, user_id: str) -> list[BoxRecord]: ...

    def save_box(self, user_id: str, box: BoxRecord) -> BoxRecord: ...

    def update_box_contents(
        self, user_id: str, box_id: str, contents: list[str], image_url: str | None = None
    ) -> BoxRecord: ...

    def delete_box(self, user_id: str, box_id: str) -> None: ...

    def get_box(self, user_id: str, box_id: str) -> BoxRecord | None: ...

    def find_box_by_code(self, user_id: str, qr_code: str) -> BoxRecord | None: ...

    def search_boxes(self, user_id: str, query: str, location_id: str | None = None) -> list[BoxRecord]: ...


# --- Shared input rules ---

def clean_name(name: str | None, what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required")
    return name


def clean_optional(text: str | None) -> str | None:
    return (text or "").strip() or None


def clean_contents(contents: list[str]) -> list[str]:
    return [item.strip() for item in contents if item and item.strip()]


def parse_contents(text: str) -> list[str]:
    """Split comma-separated form input into content items."""
    return clean_contents(text.split(","))


def box_matches(box: BoxRecord, query: str, location_id: str | None = None) -> bool:
    """Case-insensitive substring match on name, description and contents."""
    if location_id and location_id != "all" and box.location_id != location_id:
        return False
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [box.name, box.description or "", *box.contents]
    return any(needle in item.lower() for item in haystack)
