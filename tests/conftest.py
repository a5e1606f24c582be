"""Shared fixtures: isolated settings, in-memory databases, API client."""

import os
import tempfile

# Point settings at a scratch directory before anything imports binqr.config
_DATA_DIR = tempfile.mkdtemp(prefix="binqr-test-")
os.environ["BINQR_DATA_DIR"] = _DATA_DIR
os.environ["BINQR_DB_PATH"] = os.path.join(_DATA_DIR, "test.db")
os.environ["BINQR_LOCAL_STORE_PATH"] = os.path.join(_DATA_DIR, "store.json")
os.environ["BINQR_JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from binqr.database import get_session
from binqr.main import app
from binqr.models.user import Profile
from binqr.utils.security import hash_password

PASSWORD = "secret123"


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_profile(session):
    def _make(email: str = "owner@example.com", invites: int = 5) -> Profile:
        profile = Profile(
            email=email,
            password_hash=hash_password(PASSWORD),
            invites_remaining=invites,
        )
        session.add(profile)
        session.commit()
        session.refresh(profile)
        return profile

    return _make


@pytest.fixture
def override_session(engine):
    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    yield
    app.dependency_overrides.pop(get_session, None)


@pytest.fixture
def client(override_session):
    with TestClient(app) as client:
        yield client


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
