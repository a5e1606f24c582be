"""Location API endpoints."""

from fastapi import APIRouter, Depends, status

from binqr.api.deps import get_current_user, get_record_store, http_error
from binqr.errors import BinQRError
from binqr.models.user import Profile
from binqr.schemas.box import LocationCreateRequest, LocationResponse, LocationUpdateRequest
from binqr.services.record_store import LocationRecord, RecordStore
from binqr.utils.dates import to_iso

router = APIRouter(prefix="/locations", tags=["locations"])


def _location_to_response(location: LocationRecord, box_count: int) -> LocationResponse:
    return LocationResponse(
        id=location.id,
        name=location.name,
        description=location.description,
        box_count=box_count,
        created_at=to_iso(location.created_at) or "",
    )


@router.get("", response_model=list[LocationResponse])
def list_locations(
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """List the user's locations with their box counts."""
    try:
        locations = store.list_locations(user.id)
        counts = {loc.id: store.count_boxes_for_location(user.id, loc.id) for loc in locations}
    except BinQRError as e:
        raise http_error(e)
    return [_location_to_response(loc, counts[loc.id]) for loc in locations]


@router.post("", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
def create_location(
    request: LocationCreateRequest,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    try:
        location = store.save_location(user.id, request.name, request.description)
    except BinQRError as e:
        raise http_error(e)
    return _location_to_response(location, 0)


@router.patch("/{location_id}", response_model=LocationResponse)
def update_location(
    location_id: str,
    request: LocationUpdateRequest,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    try:
        location = store.update_location(user.id, location_id, request.name, request.description)
        box_count = store.count_boxes_for_location(user.id, location_id)
    except BinQRError as e:
        raise http_error(e)
    return _location_to_response(location, box_count)


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_location(
    location_id: str,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """Delete a location. Refused while boxes still reference it."""
    try:
        store.delete_location(user.id, location_id)
    except BinQRError as e:
        raise http_error(e)
