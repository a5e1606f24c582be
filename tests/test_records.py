"""Record store tests, run against both the database and the local-file store."""

import json

import pytest

from binqr.errors import LocationHasBoxes, RecordNotFound, ValidationError
from binqr.services.record_service import DatabaseRecordStore
from binqr.services.record_store import BoxRecord, parse_contents
from binqr.storage.local_store import BOXES_KEY, DEFAULT_LOCATIONS, LOCATIONS_KEY, LocalRecordStore
from binqr.utils.qr import parse_qr_payload, qr_payload

BOX_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.fixture(params=["database", "local"])
def store(request, session, tmp_path):
    if request.param == "database":
        return DatabaseRecordStore(session)
    return LocalRecordStore(tmp_path / "store.json")


@pytest.fixture
def users(make_profile):
    return make_profile("alice@example.com").id, make_profile("bob@example.com").id


@pytest.fixture
def garage(store, users):
    alice, _ = users
    return store.save_location(alice, "  Garage  ", "  tools ")


def _save(store, user_id, location_id, contents, box_id=BOX_ID, name="Winter clothes"):
    box = BoxRecord.create(user_id=user_id, name=name, location_id=location_id, contents=contents, box_id=box_id)
    return store.save_box(user_id, box)


# --- QR payloads ---

def test_qr_payload_is_prefixed_id():
    assert qr_payload(BOX_ID) == f"BinQR:{BOX_ID}"
    assert parse_qr_payload(f"BinQR:{BOX_ID}") == BOX_ID
    assert parse_qr_payload("https://example.com") is None
    assert parse_qr_payload("BinQR:") is None


def test_new_box_derives_qr_code():
    box = BoxRecord.create(user_id="u", name="Box", location_id="l")
    assert box.qr_code == f"BinQR:{box.id}"


# --- Locations ---

def test_location_name_trimmed(garage):
    assert garage.name == "Garage"
    assert garage.description == "tools"


def test_location_name_required(store, users):
    with pytest.raises(ValidationError):
        store.save_location(users[0], "   ")


def test_update_location(store, users, garage):
    alice, bob = users
    updated = store.update_location(alice, garage.id, name="Big Garage", description="")
    assert updated.name == "Big Garage"
    assert updated.description is None

    with pytest.raises(RecordNotFound):
        store.update_location(bob, garage.id, name="Mine now")


def test_delete_location_with_boxes_is_refused(store, users, garage):
    alice, _ = users
    _save(store, alice, garage.id, ["skis"])

    with pytest.raises(LocationHasBoxes):
        store.delete_location(alice, garage.id)
    assert store.count_boxes_for_location(alice, garage.id) == 1


def test_delete_empty_location(store, users, garage):
    alice, bob = users
    with pytest.raises(RecordNotFound):
        store.delete_location(bob, garage.id)

    store.delete_location(alice, garage.id)
    assert garage.id not in [loc.id for loc in store.list_locations(alice)]


# --- Boxes ---

def test_contents_round_trip_and_replace(store, users, garage):
    alice, _ = users
    _save(store, alice, garage.id, ["a", "b"])
    assert store.get_box(alice, BOX_ID).contents == ["a", "b"]

    _save(store, alice, garage.id, ["a"])
    assert store.get_box(alice, BOX_ID).contents == ["a"]


def test_update_contents_refreshes_timestamp(store, users, garage):
    alice, _ = users
    saved = _save(store, alice, garage.id, ["lamp", "cable"])

    updated = store.update_box_contents(alice, BOX_ID, ["cable", " ", "bulb "])
    assert updated.contents == ["cable", "bulb"]
    assert updated.updated_at >= saved.updated_at
    assert updated.created_at == saved.created_at
    assert store.get_box(alice, BOX_ID).contents == ["cable", "bulb"]


def test_find_by_code(store, users, garage):
    alice, bob = users
    _save(store, alice, garage.id, ["tent"])

    found = store.find_box_by_code(alice, f"BinQR:{BOX_ID}")
    assert found.id == BOX_ID
    assert found.qr_code == f"BinQR:{BOX_ID}"
    assert store.find_box_by_code(bob, f"BinQR:{BOX_ID}") is None
    assert store.find_box_by_code(alice, "BinQR:unknown") is None


def test_boxes_are_owner_scoped(store, users, garage):
    alice, bob = users
    _save(store, alice, garage.id, ["tent"])

    assert store.list_boxes(bob) == []
    assert store.get_box(bob, BOX_ID) is None
    with pytest.raises(RecordNotFound):
        store.update_box_contents(bob, BOX_ID, ["stolen"])

    bobs_shed = store.save_location(bob, "Shed")
    with pytest.raises(RecordNotFound):
        _save(store, bob, bobs_shed.id, ["overwrite"])


def test_box_needs_own_location(store, users, garage):
    _, bob = users
    with pytest.raises(RecordNotFound):
        _save(store, bob, garage.id, ["x"])


def test_delete_box(store, users, garage):
    alice, bob = users
    _save(store, alice, garage.id, ["skis", "poles"])

    with pytest.raises(RecordNotFound):
        store.delete_box(bob, BOX_ID)
    assert store.get_box(alice, BOX_ID) is not None

    store.delete_box(alice, BOX_ID)
    assert store.get_box(alice, BOX_ID) is None
    assert store.find_box_by_code(alice, f"BinQR:{BOX_ID}") is None
    assert store.count_boxes_for_location(alice, garage.id) == 0
    with pytest.raises(RecordNotFound):
        store.delete_box(alice, BOX_ID)

    store.delete_location(alice, garage.id)


def test_search_boxes(store, users, garage):
    alice, _ = users
    attic = store.save_location(alice, "Attic")
    _save(store, alice, garage.id, ["Skis", "Poles"], box_id="box-1", name="Winter")
    _save(store, alice, attic.id, ["Photo albums"], box_id="box-2", name="Memories")

    assert [b.id for b in store.search_boxes(alice, "ski")] == ["box-1"]
    assert [b.id for b in store.search_boxes(alice, "MEMO")] == ["box-2"]
    assert {b.id for b in store.search_boxes(alice, "", attic.id)} == {"box-2"}
    assert {b.id for b in store.search_boxes(alice, "", "all")} == {"box-1", "box-2"}
    assert store.search_boxes(alice, "nothing-matches") == []


def test_parse_contents():
    assert parse_contents(" hammer, nails ,, tape ") == ["hammer", "nails", "tape"]
    assert parse_contents("") == []


# --- Local store specifics ---

def test_local_store_file_format(tmp_path):
    path = tmp_path / "store.json"
    store = LocalRecordStore(path)
    shed = store.save_location("u1", "Shed")
    box = store.save_box("u1", BoxRecord.create(user_id="u1", name="Bikes", location_id=shed.id, box_id=BOX_ID))

    blob = json.loads(path.read_text())
    stored = next(b for b in blob[BOXES_KEY] if b["id"] == BOX_ID)
    assert stored["qrCode"] == f"BinQR:{BOX_ID}"
    assert stored["createdAt"] == box.created_at.isoformat()
    assert any(loc["id"] == shed.id for loc in blob[LOCATIONS_KEY])

    reread = LocalRecordStore(path).get_box("u1", BOX_ID)
    assert reread.created_at == box.created_at
    assert reread.updated_at == box.updated_at


def test_local_store_seeds_defaults_once(tmp_path):
    store = LocalRecordStore(tmp_path / "store.json")
    names = [loc.name for loc in store.list_locations("u1")]
    assert names == [name for name, _ in DEFAULT_LOCATIONS]

    first = store.list_locations("u1")[0]
    store.delete_location("u1", first.id)
    assert len(store.list_locations("u1")) == len(DEFAULT_LOCATIONS) - 1
    assert len(store.list_locations("u2")) == len(DEFAULT_LOCATIONS)
