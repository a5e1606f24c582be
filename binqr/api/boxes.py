"""Box API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from binqr.api.deps import get_current_user, get_record_store, http_error
from binqr.errors import BinQRError
from binqr.models.user import Profile
from binqr.schemas.box import BoxContentsRequest, BoxResponse, BoxSaveRequest
from binqr.services.record_store import BoxRecord, RecordStore
from binqr.utils.dates import to_iso

router = APIRouter(prefix="/boxes", tags=["boxes"])


def _box_to_response(box: BoxRecord) -> BoxResponse:
    return BoxResponse(
        id=box.id,
        name=box.name,
        description=box.description,
        qr_code=box.qr_code,
        image_url=box.image_url,
        location_id=box.location_id,
        contents=box.contents,
        ai_analysis=box.ai_analysis,
        created_at=to_iso(box.created_at) or "",
        updated_at=to_iso(box.updated_at) or "",
    )


@router.get("", response_model=list[BoxResponse])
def list_boxes(
    q: str = Query(default=""),
    location_id: Optional[str] = Query(default=None),
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """List boxes, most recently updated first. ``q`` filters by substring."""
    try:
        if q.strip() or location_id:
            boxes = store.search_boxes(user.id, q, location_id)
        else:
            boxes = store.list_boxes(user.id)
    except BinQRError as e:
        raise http_error(e)
    return [_box_to_response(b) for b in boxes]


@router.get("/by-code/{qr_code:path}", response_model=BoxResponse)
def find_box_by_code(
    qr_code: str,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """Look up a box by its scanned QR payload."""
    try:
        box = store.find_box_by_code(user.id, qr_code)
    except BinQRError as e:
        raise http_error(e)
    if not box:
        raise HTTPException(status_code=404, detail="Box not found")
    return _box_to_response(box)


@router.get("/{box_id}", response_model=BoxResponse)
def get_box(
    box_id: str,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    try:
        box = store.get_box(user.id, box_id)
    except BinQRError as e:
        raise http_error(e)
    if not box:
        raise HTTPException(status_code=404, detail="Box not found")
    return _box_to_response(box)


@router.put("/{box_id}", response_model=BoxResponse)
def save_box(
    box_id: str,
    request: BoxSaveRequest,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """Create or replace a box. The id is chosen by the client."""
    record = BoxRecord.create(
        user_id=user.id,
        box_id=box_id,
        name=request.name,
        location_id=request.location_id,
        contents=request.contents,
        description=request.description,
        image_url=request.image_url,
        ai_analysis=request.ai_analysis,
    )
    try:
        box = store.save_box(user.id, record)
    except BinQRError as e:
        raise http_error(e)
    return _box_to_response(box)


@router.put("/{box_id}/contents", response_model=BoxResponse)
def update_box_contents(
    box_id: str,
    request: BoxContentsRequest,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    """Replace a box's contents (scan-and-update flow)."""
    try:
        box = store.update_box_contents(user.id, box_id, request.contents, request.image_url)
    except BinQRError as e:
        raise http_error(e)
    return _box_to_response(box)


@router.delete("/{box_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_box(
    box_id: str,
    user: Profile = Depends(get_current_user),
    store: RecordStore = Depends(get_record_store),
):
    try:
        store.delete_box(user.id, box_id)
    except BinQRError as e:
        raise http_error(e)
