from functools import lru_cache

from sqlmodel import Session

from binqr.config import settings
from binqr.services.record_service import DatabaseRecordStore
from binqr.services.record_store import RecordStore
from binqr.storage.local_store import LocalRecordStore


@lru_cache(maxsize=1)
def get_local_store() -> LocalRecordStore:
    return LocalRecordStore(settings.local_store_path)


def make_record_store(session: Session) -> RecordStore:
    backend = settings.record_backend.strip().lower()
    if backend == "local":
        return get_local_store()
    return DatabaseRecordStore(session)
