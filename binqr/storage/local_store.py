"""Local JSON-file record store.

Offline/demo fallback with the same contract as the database store. The file
holds one JSON object keyed by ``binqr_boxes`` and ``binqr_locations``;
datetimes are stored as ISO-8601 strings.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from binqr.errors import LocationHasBoxes, PersistenceError, RecordNotFound
from binqr.services.record_store import (
    BoxRecord,
    LocationRecord,
    box_matches,
    clean_contents,
    clean_name,
    clean_optional,
)
from binqr.utils.dates import from_iso, to_iso, utcnow
from binqr.utils.qr import qr_payload

logger = logging.getLogger(__name__)

BOXES_KEY = "binqr_boxes"
LOCATIONS_KEY = "binqr_locations"
SEEDED_KEY = "binqr_seeded_users"

DEFAULT_LOCATIONS = [
    ("Garage", "Main storage area for seasonal items and tools"),
    ("Storage Room", "Climate-controlled room for electronics and appliances"),
    ("Bedroom Closet", "Upper shelf storage for clothing and linens"),
    ("Basement", "Long-term storage for books and archives"),
    ("Attic", "Overhead storage space - check temperature sensitivity"),
]


def _location_to_json(location: LocationRecord) -> dict:
    return {
        "id": location.id,
        "name": location.name,
        "description": location.description,
        "user_id": location.user_id,
        "createdAt": to_iso(location.created_at),
    }


def _location_from_json(data: dict) -> LocationRecord:
    return LocationRecord(
        id=data["id"],
        name=data["name"],
        description=data.get("description"),
        user_id=data["user_id"],
        created_at=from_iso(data["createdAt"]),
    )


def _box_to_json(box: BoxRecord) -> dict:
    return {
        "id": box.id,
        "name": box.name,
        "description": box.description,
        "qrCode": box.qr_code,
        "imageUrl": box.image_url,
        "locationId": box.location_id,
        "user_id": box.user_id,
        "contents": list(box.contents),
        "aiAnalysis": box.ai_analysis,
        "createdAt": to_iso(box.created_at),
        "updatedAt": to_iso(box.updated_at),
    }


def _box_from_json(data: dict) -> BoxRecord:
    return BoxRecord(
        id=data["id"],
        name=data["name"],
        description=data.get("description"),
        qr_code=data["qrCode"],
        image_url=data.get("imageUrl"),
        location_id=data["locationId"],
        user_id=data["user_id"],
        contents=list(data.get("contents") or []),
        ai_analysis=data.get("aiAnalysis"),
        created_at=from_iso(data["createdAt"]),
        updated_at=from_iso(data["updatedAt"]),
    )


class LocalRecordStore:
    """RecordStore over a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    # --- Blob I/O ---

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to read local store %s: %s", self.path, e)
            raise PersistenceError("Failed to read local store") from e

    def _write(self, blob: dict) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(blob, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            logger.error("Failed to write local store %s: %s", self.path, e)
            raise PersistenceError("Failed to write local store") from e

    def _boxes(self, blob: dict) -> list[BoxRecord]:
        try:
            return [_box_from_json(b) for b in blob.get(BOXES_KEY, [])]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError("Local store holds malformed boxes") from e

    def _locations(self, blob: dict) -> list[LocationRecord]:
        try:
            return [_location_from_json(loc) for loc in blob.get(LOCATIONS_KEY, [])]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError("Local store holds malformed locations") from e

    def _seed_defaults(self, blob: dict, user_id: str) -> bool:
        """Give a user the default locations the first time they are seen."""
        seeded = blob.setdefault(SEEDED_KEY, [])
        if user_id in seeded:
            return False
        seeded.append(user_id)
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        locations = blob.setdefault(LOCATIONS_KEY, [])
        for offset, (name, description) in enumerate(DEFAULT_LOCATIONS):
            locations.append(_location_to_json(LocationRecord(
                id=str(uuid.uuid4()),
                name=name,
                description=description,
                user_id=user_id,
                created_at=base.replace(day=1 + offset),
            )))
        return True

    def _own_location(self, blob: dict, user_id: str, location_id: str) -> LocationRecord:
        for location in self._locations(blob):
            if location.id == location_id and location.user_id == user_id:
                return location
        raise RecordNotFound("Location not found")

    # --- Locations ---

    def list_locations(self, user_id: str) -> list[LocationRecord]:
        with self._lock:
            blob = self._read()
            if self._seed_defaults(blob, user_id):
                self._write(blob)
            locations = [loc for loc in self._locations(blob) if loc.user_id == user_id]
        return sorted(locations, key=lambda loc: loc.created_at)

    def save_location(self, user_id: str, name: str, description: str | None = None) -> LocationRecord:
        location = LocationRecord(
            id=str(uuid.uuid4()),
            name=clean_name(name, "Location"),
            description=clean_optional(description),
            user_id=user_id,
            created_at=utcnow(),
        )
        with self._lock:
            blob = self._read()
            self._seed_defaults(blob, user_id)
            blob.setdefault(LOCATIONS_KEY, []).append(_location_to_json(location))
            self._write(blob)
        return location

    def update_location(
        self, user_id: str, location_id: str, name: str | None = None, description: str | None = None
    ) -> LocationRecord:
        with self._lock:
            blob = self._read()
            location = self._own_location(blob, user_id, location_id)
            if name is not None:
                location.name = clean_name(name, "Location")
            if description is not None:
                location.description = clean_optional(description)
            blob[LOCATIONS_KEY] = [
                _location_to_json(location) if loc["id"] == location_id else loc
                for loc in blob.get(LOCATIONS_KEY, [])
            ]
            self._write(blob)
        return location

    def delete_location(self, user_id: str, location_id: str) -> None:
        with self._lock:
            blob = self._read()
            self._own_location(blob, user_id, location_id)
            if any(b.location_id == location_id for b in self._boxes(blob)):
                raise LocationHasBoxes()
            blob[LOCATIONS_KEY] = [
                loc for loc in blob.get(LOCATIONS_KEY, []) if loc["id"] != location_id
            ]
            self._write(blob)

    def count_boxes_for_location(self, user_id: str, location_id: str) -> int:
        with self._lock:
            boxes = self._boxes(self._read())
        return sum(1 for b in boxes if b.user_id == user_id and b.location_id == location_id)

    # --- Boxes ---

    def list_boxes(self, user_id: str) -> list[BoxRecord]:
        with self._lock:
            boxes = [b for b in self._boxes(self._read()) if b.user_id == user_id]
        return sorted(boxes, key=lambda b: b.updated_at, reverse=True)

    def _put_box(self, blob: dict, box: BoxRecord) -> None:
        boxes = blob.setdefault(BOXES_KEY, [])
        for i, existing in enumerate(boxes):
            if existing["id"] == box.id:
                boxes[i] = _box_to_json(box)
                return
        boxes.append(_box_to_json(box))

    def save_box(self, user_id: str, box: BoxRecord) -> BoxRecord:
        name = clean_name(box.name, "Box")
        with self._lock:
            blob = self._read()
            self._own_location(blob, user_id, box.location_id)
            existing = next((b for b in self._boxes(blob) if b.id == box.id), None)
            if existing and existing.user_id != user_id:
                raise RecordNotFound("Box not found")
            saved = BoxRecord(
                id=box.id,
                name=name,
                description=clean_optional(box.description),
                qr_code=qr_payload(box.id),
                image_url=box.image_url,
                location_id=box.location_id,
                user_id=user_id,
                contents=clean_contents(box.contents),
                ai_analysis=box.ai_analysis,
                created_at=existing.created_at if existing else box.created_at,
                updated_at=utcnow(),
            )
            self._put_box(blob, saved)
            self._write(blob)
        return saved

    def update_box_contents(
        self, user_id: str, box_id: str, contents: list[str], image_url: str | None = None
    ) -> BoxRecord:
        with self._lock:
            blob = self._read()
            box = next((b for b in self._boxes(blob) if b.id == box_id and b.user_id == user_id), None)
            if not box:
                raise RecordNotFound("Box not found")
            box.contents = clean_contents(contents)
            if image_url:
                box.image_url = image_url
            box.updated_at = utcnow()
            self._put_box(blob, box)
            self._write(blob)
        return box

    def delete_box(self, user_id: str, box_id: str) -> None:
        with self._lock:
            blob = self._read()
            if not any(b.id == box_id and b.user_id == user_id for b in self._boxes(blob)):
                raise RecordNotFound("Box not found")
            blob[BOXES_KEY] = [b for b in blob.get(BOXES_KEY, []) if b["id"] != box_id]
            self._write(blob)

    def get_box(self, user_id: str, box_id: str) -> BoxRecord | None:
        return next((b for b in self.list_boxes(user_id) if b.id == box_id), None)

    def find_box_by_code(self, user_id: str, qr_code: str) -> BoxRecord | None:
        qr_code = qr_code.strip()
        return next((b for b in self.list_boxes(user_id) if b.qr_code == qr_code), None)

    def search_boxes(self, user_id: str, query: str, location_id: str | None = None) -> list[BoxRecord]:
        return [b for b in self.list_boxes(user_id) if box_matches(b, query, location_id)]
