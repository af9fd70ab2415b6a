# tests/conftest.py
import os
import tempfile
from datetime import datetime, time, timedelta, timezone

# settings are read once at import time
os.environ["ROOMBOOK_SKIP_DB_INIT"] = "1"
os.environ["ROOMBOOK_HOLD_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["ROOMBOOK_DATABASE_URL"] = "sqlite://"

import pytest
from argon2 import PasswordHasher
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from roombook.credentials import PasswordHashing
from roombook.db import Base, get_db, make_engine
from roombook.dependencies import get_clock, get_password_hashing
from roombook.main import app
from roombook.models import Room, RoomBlackout
from roombook.repository import InMemoryBookingRepository
from roombook.sql_repository import SqlBookingRepository

# 2030-01-01 08:00 UTC, one hour before the demo rooms open
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def hashing():
    # cheapest argon2id parameters; production uses the library defaults
    return PasswordHashing(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest.fixture
def repo():
    return InMemoryBookingRepository()


@pytest.fixture(scope="function")
def test_db_session():
    # temp DB
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    db_url = f"sqlite:///{tmp.name}"

    # test engine / Session
    engine = make_engine(db_url)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
        os.unlink(tmp.name)


@pytest.fixture
def sql_repo(test_db_session):
    return SqlBookingRepository(test_db_session)


@pytest.fixture(scope="function")
def client(test_db_session, clock, hashing):
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_password_hashing] = lambda: hashing

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# —— Factories ——
@pytest.fixture
def make_room(test_db_session):
    def _make_room(name="Room 1", location="3F", capacity=6, open_time=time(9, 0),
                   close_time=time(18, 0), is_active=True):
        r = Room(name=name, location=location, capacity=capacity, is_active=is_active,
                 open_time=open_time, close_time=close_time)
        test_db_session.add(r)
        test_db_session.commit()
        test_db_session.refresh(r)
        return r
    return _make_room


@pytest.fixture
def make_blackout(test_db_session):
    def _make_blackout(room_id, start, end, reason=None):
        b = RoomBlackout(room_id=room_id, start_at=start.replace(tzinfo=None),
                         end_at=end.replace(tzinfo=None), reason=reason)
        test_db_session.add(b)
        test_db_session.commit()
        return b
    return _make_blackout
