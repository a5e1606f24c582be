"""Database-backed Box/Location records, scoped to the owning user."""

import logging
from contextlib import contextmanager

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, func, select

from binqr.errors import LocationHasBoxes, PersistenceError, RecordNotFound
from binqr.models.box import Box, BoxContent, Location
from binqr.services.record_store import (
    BoxRecord,
    LocationRecord,
    box_matches,
    clean_contents,
    clean_name,
    clean_optional,
)
from binqr.utils.dates import as_utc, utcnow
from binqr.utils.qr import qr_payload

logger = logging.getLogger(__name__)


def _location_to_record(location: Location) -> LocationRecord:
    return LocationRecord(
        id=location.id,
        name=location.name,
        description=location.description,
        user_id=location.user_id,
        created_at=as_utc(location.created_at),
    )


def _box_to_record(box: Box, contents: list[str]) -> BoxRecord:
    return BoxRecord(
        id=box.id,
        name=box.name,
        description=box.description,
        qr_code=box.qr_code,
        image_url=box.image_url,
        location_id=box.location_id,
        user_id=box.user_id,
        contents=contents,
        ai_analysis=box.ai_analysis,
        created_at=as_utc(box.created_at),
        updated_at=as_utc(box.updated_at),
    )


class DatabaseRecordStore:
    """RecordStore over SQLModel. One instance per request session."""

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _persistence(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to %s: %s", action, e)
            raise PersistenceError(f"Failed to {action}") from e

    # --- Locations ---

    def _own_location(self, user_id: str, location_id: str) -> Location:
        location = self.session.get(Location, location_id)
        if not location or location.user_id != user_id:
            raise RecordNotFound("Location not found")
        return location

    def list_locations(self, user_id: str) -> list[LocationRecord]:
        with self._persistence("load locations"):
            locations = self.session.exec(
                select(Location)
                .where(Location.user_id == user_id)
                .order_by(col(Location.created_at))
            ).all()
        return [_location_to_record(loc) for loc in locations]

    def save_location(self, user_id: str, name: str, description: str | None = None) -> LocationRecord:
        location = Location(
            name=clean_name(name, "Location"),
            description=clean_optional(description),
            user_id=user_id,
        )
        with self._persistence("save location"):
            self.session.add(location)
            self.session.commit()
            self.session.refresh(location)
        return _location_to_record(location)

    def update_location(
        self, user_id: str, location_id: str, name: str | None = None, description: str | None = None
    ) -> LocationRecord:
        with self._persistence("update location"):
            location = self._own_location(user_id, location_id)
            if name is not None:
                location.name = clean_name(name, "Location")
            if description is not None:
                location.description = clean_optional(description)
            self.session.add(location)
            self.session.commit()
            self.session.refresh(location)
        return _location_to_record(location)

    def delete_location(self, user_id: str, location_id: str) -> None:
        with self._persistence("delete location"):
            location = self._own_location(user_id, location_id)
            if self.count_boxes_for_location(user_id, location_id) > 0:
                raise LocationHasBoxes()
            self.session.delete(location)
            self.session.commit()

    def count_boxes_for_location(self, user_id: str, location_id: str) -> int:
        with self._persistence("count boxes"):
            return self.session.exec(
                select(func.count())
                .select_from(Box)
                .where(Box.user_id == user_id, Box.location_id == location_id)
            ).one()

    # --- Boxes ---

    def _contents_for(self, box_ids: list[str]) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {box_id: [] for box_id in box_ids}
        if not box_ids:
            return grouped
        rows = self.session.exec(
            select(BoxContent)
            .where(col(BoxContent.box_id).in_(box_ids))
            .order_by(col(BoxContent.box_id), col(BoxContent.position))
        ).all()
        for row in rows:
            grouped[row.box_id].append(row.content)
        return grouped

    def _to_records(self, boxes: list[Box]) -> list[BoxRecord]:
        contents = self._contents_for([b.id for b in boxes])
        return [_box_to_record(b, contents[b.id]) for b in boxes]

    def _replace_contents(self, box_id: str, contents: list[str]) -> list[str]:
        self.session.exec(delete(BoxContent).where(col(BoxContent.box_id) == box_id))  # type: ignore[call-overload]
        items = clean_contents(contents)
        for position, item in enumerate(items):
            self.session.add(BoxContent(box_id=box_id, position=position, content=item))
        return items

    def list_boxes(self, user_id: str) -> list[BoxRecord]:
        with self._persistence("load boxes"):
            boxes = self.session.exec(
                select(Box)
                .where(Box.user_id == user_id)
                .order_by(col(Box.updated_at).desc())
            ).all()
            return self._to_records(list(boxes))

    def save_box(self, user_id: str, box: BoxRecord) -> BoxRecord:
        """Insert or update a box; its contents are replaced wholesale.

        The box row and its content rows commit together.
        """
        name = clean_name(box.name, "Box")
        now = utcnow()
        with self._persistence("save box"):
            self._own_location(user_id, box.location_id)
            row = self.session.get(Box, box.id)
            if row and row.user_id != user_id:
                raise RecordNotFound("Box not found")
            if not row:
                row = Box(
                    id=box.id,
                    qr_code=qr_payload(box.id),
                    user_id=user_id,
                    name=name,
                    location_id=box.location_id,
                    created_at=box.created_at or now,
                )
            row.name = name
            row.description = clean_optional(box.description)
            row.image_url = box.image_url
            row.location_id = box.location_id
            row.ai_analysis = box.ai_analysis
            row.updated_at = now
            self.session.add(row)
            self.session.flush()
            items = self._replace_contents(row.id, box.contents)
            self.session.commit()
            self.session.refresh(row)
        return _box_to_record(row, items)

    def update_box_contents(
        self, user_id: str, box_id: str, contents: list[str], image_url: str | None = None
    ) -> BoxRecord:
        with self._persistence("update box"):
            row = self.session.get(Box, box_id)
            if not row or row.user_id != user_id:
                raise RecordNotFound("Box not found")
            if image_url:
                row.image_url = image_url
            row.updated_at = utcnow()
            self.session.add(row)
            items = self._replace_contents(row.id, contents)
            self.session.commit()
            self.session.refresh(row)
        return _box_to_record(row, items)

    def delete_box(self, user_id: str, box_id: str) -> None:
        """Delete a box together with its content rows."""
        with self._persistence("delete box"):
            row = self.session.get(Box, box_id)
            if not row or row.user_id != user_id:
                raise RecordNotFound("Box not found")
            self.session.exec(delete(BoxContent).where(col(BoxContent.box_id) == box_id))  # type: ignore[call-overload]
            self.session.delete(row)
            self.session.commit()

    def get_box(self, user_id: str, box_id: str) -> BoxRecord | None:
        with self._persistence("load box"):
            row = self.session.get(Box, box_id)
            if not row or row.user_id != user_id:
                return None
            return self._to_records([row])[0]

    def find_box_by_code(self, user_id: str, qr_code: str) -> BoxRecord | None:
        with self._persistence("find box"):
            row = self.session.exec(
                select(Box).where(Box.qr_code == qr_code.strip(), Box.user_id == user_id)
            ).first()
            if not row:
                return None
            return self._to_records([row])[0]

    def search_boxes(self, user_id: str, query: str, location_id: str | None = None) -> list[BoxRecord]:
        return [b for b in self.list_boxes(user_id) if box_matches(b, query, location_id)]
