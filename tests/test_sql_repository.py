import threading
from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from roombook import db as roombook_db
from roombook.errors import ConflictError
from roombook.holds import HoldManager
from roombook.intervals import TimeRange
from roombook.records import ReservationStatus
from roombook.repository import OverlapError
from roombook.sql_repository import SqlBookingRepository

NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


def at(hh, mm=0):
    return datetime(2030, 1, 1, hh, mm, tzinfo=timezone.utc)


def insert_hold(repo, room_id, period, token, ttl=timedelta(minutes=5), now=NOW):
    return repo.insert_hold(room_id, period, token, None, now + ttl, now)


def insert_reservation(repo, room_id, period, fp="fp", now=NOW):
    return repo.insert_reservation(room_id, period, "Kim", fp, "hash", now)


def test_room_queries(sql_repo, make_room):
    a = make_room(name="A", location="HQ 3F", capacity=4, open_time=time(9, 30))
    make_room(name="B", location="Annex", capacity=12)
    make_room(name="C", location="HQ 3F", capacity=20, is_active=False)

    assert [r.name for r in sql_repo.list_active_rooms()] == ["A", "B"]
    assert [r.name for r in sql_repo.list_active_rooms(capacity=5)] == ["B"]
    assert [r.name for r in sql_repo.list_active_rooms(location="hq")] == ["A"]
    room = sql_repo.get_room(a.id)
    assert room.open_time == time(9, 30)
    assert sql_repo.get_room(999) is None


def test_hold_round_trip_keeps_utc_instants(sql_repo, make_room):
    room = make_room()
    hold = insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1")

    fetched = sql_repo.get_hold_by_token("tok-1")
    assert fetched == hold
    assert fetched.period.start == at(10)
    assert fetched.expires_at == NOW + timedelta(minutes=5)
    assert fetched.expires_at.tzinfo is not None


def test_overlapping_live_hold_is_refused_by_the_store(sql_repo, make_room):
    room = make_room()
    insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1")

    with pytest.raises(OverlapError):
        insert_hold(sql_repo, room.id, TimeRange(at(10, 30), at(11, 30)), "tok-2")
    # adjacent ranges are fine
    insert_hold(sql_repo, room.id, TimeRange(at(11), at(12)), "tok-3")


def test_expired_hold_does_not_block_insert(sql_repo, make_room):
    room = make_room()
    insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1", ttl=timedelta(minutes=1))
    later = NOW + timedelta(minutes=2)

    insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-2", now=later)
    assert [h.token for h in sql_repo.list_holds_for_room(room.id, TimeRange(at(9), at(12)), later)] == ["tok-2"]


def test_hold_over_reservation_is_refused(sql_repo, make_room):
    room = make_room()
    insert_reservation(sql_repo, room.id, TimeRange(at(10), at(11)))
    with pytest.raises(OverlapError):
        insert_hold(sql_repo, room.id, TimeRange(at(10, 59), at(12)), "tok-1")


def test_duplicate_token_is_refused(sql_repo, make_room):
    room = make_room()
    insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1")
    with pytest.raises(OverlapError):
        insert_hold(sql_repo, room.id, TimeRange(at(12), at(13)), "tok-1")


def test_overlapping_reservation_is_refused_until_cancelled(sql_repo, make_room):
    room = make_room()
    first = insert_reservation(sql_repo, room.id, TimeRange(at(10), at(11)))
    assert first.status is ReservationStatus.CONFIRMED

    with pytest.raises(OverlapError):
        insert_reservation(sql_repo, room.id, TimeRange(at(10, 30), at(11, 30)))

    assert sql_repo.conditional_update_status(
        first.id, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, NOW
    ) == 1
    second = insert_reservation(sql_repo, room.id, TimeRange(at(10, 30), at(11, 30)))
    assert second.id != first.id


def test_conditional_update_affects_nothing_when_status_moved(sql_repo, make_room):
    room = make_room()
    r = insert_reservation(sql_repo, room.id, TimeRange(at(10), at(11)))
    sql_repo.conditional_update_status(r.id, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, NOW)

    assert sql_repo.conditional_update_status(
        r.id, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, NOW
    ) == 0
    assert sql_repo.get_reservation(r.id).status is ReservationStatus.CANCELLED


def test_reservation_listing_filters(sql_repo, make_room):
    room = make_room()
    kept = insert_reservation(sql_repo, room.id, TimeRange(at(10), at(11)), fp="mine")
    gone = insert_reservation(sql_repo, room.id, TimeRange(at(12), at(13)), fp="mine")
    insert_reservation(sql_repo, room.id, TimeRange(at(14), at(15)), fp="other")
    sql_repo.conditional_update_status(gone.id, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, NOW)

    occupying = sql_repo.list_reservations_for_room(room.id, TimeRange(at(9), at(13)))
    assert [r.id for r in occupying] == [kept.id]
    assert {r.id for r in sql_repo.list_reservations_by_phone_fingerprint("mine")} == {kept.id, gone.id}


def test_blackouts_are_overlap_filtered(sql_repo, make_room, make_blackout):
    room = make_room()
    make_blackout(room.id, at(10), at(11), reason="maintenance")
    make_blackout(room.id, at(14), at(15))

    found = sql_repo.list_blackouts(room.id, TimeRange(at(10, 30), at(12)))
    assert [(b.period, b.reason) for b in found] == [(TimeRange(at(10), at(11)), "maintenance")]


def test_delete_hold_and_expired_sweep(sql_repo, make_room):
    room = make_room()
    a = insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "a", ttl=timedelta(minutes=1))
    insert_hold(sql_repo, room.id, TimeRange(at(11), at(12)), "b", ttl=timedelta(minutes=10))
    c = insert_hold(sql_repo, room.id, TimeRange(at(12), at(13)), "c", ttl=timedelta(minutes=10))

    assert sql_repo.delete_hold(c.id) is True
    assert sql_repo.delete_hold(c.id) is False
    assert sql_repo.delete_expired_holds(NOW + timedelta(minutes=5)) == 1
    assert sql_repo.get_hold_by_token("a") is None
    assert sql_repo.get_hold_by_token("b") is not None
    assert a.id != c.id


# —— Concurrency ——

def race_for_hold(session_factory, clock, room_id, period, workers=4):
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def worker():
        session = session_factory()
        try:
            holds = HoldManager(SqlBookingRepository(session), clock)
            barrier.wait()
            try:
                holds.create_hold(room_id, period)
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            except Exception as exc:  # surfaced through the assertion below
                outcome = repr(exc)
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return sorted(outcomes)


def test_concurrent_holds_on_same_range_admit_exactly_one(test_db_session, clock, make_room):
    room = make_room()
    Session = sessionmaker(autocommit=False, autoflush=False, bind=test_db_session.get_bind())

    for hour in range(9, 17):
        period = TimeRange(at(hour), at(hour, 45))
        assert race_for_hold(Session, clock, room.id, period) == ["conflict"] * 3 + ["ok"]

    repo = SqlBookingRepository(test_db_session)
    held = repo.list_holds_for_room(room.id, TimeRange(at(9), at(17)), clock.now)
    assert len(held) == 8


class SerializationFailure(Exception):
    pgcode = "40001"


class DeadlockDetected(Exception):
    pgcode = "40P01"


def test_serialization_failure_is_reported_as_overlap(sql_repo, make_room, monkeypatch):
    room = make_room()

    def aborted(statement, params=None):
        raise OperationalError("INSERT INTO holds", params, SerializationFailure())

    monkeypatch.setattr(sql_repo.db, "execute", aborted)
    with pytest.raises(OverlapError):
        insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1")


def test_other_database_errors_are_not_masked(sql_repo, make_room, monkeypatch):
    room = make_room()

    def deadlocked(statement, params=None):
        raise OperationalError("INSERT INTO holds", params, DeadlockDetected())

    monkeypatch.setattr(sql_repo.db, "execute", deadlocked)
    with pytest.raises(OperationalError):
        insert_hold(sql_repo, room.id, TimeRange(at(10), at(11)), "tok-1")


def test_server_databases_run_serializable(monkeypatch):
    calls = []
    monkeypatch.setattr(roombook_db, "create_engine", lambda url, **kwargs: calls.append((url, kwargs)))

    roombook_db.make_engine("postgresql+psycopg2://booking@db/roombook")
    roombook_db.make_engine("sqlite:///./roombook.db")

    assert calls == [
        ("postgresql+psycopg2://booking@db/roombook", {"isolation_level": "SERIALIZABLE"}),
        ("sqlite:///./roombook.db", {"connect_args": {"check_same_thread": False}}),
    ]
