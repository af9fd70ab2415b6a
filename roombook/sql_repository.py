"""
SQLAlchemy adapter for the booking storage capability.

Holds and reservations are written with a single INSERT ... SELECT ... WHERE
NOT EXISTS statement that re-checks overlap as part of the write. On SQLite
writers are serialised by the database lock. Other databases run under
SERIALIZABLE isolation (see ``roombook.db.make_engine``): when two such
inserts race, one is aborted with a serialization failure (SQLSTATE 40001)
and reported as an overlap, same as an IntegrityError from a unique token or
an exclusion constraint.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from roombook import models
from roombook.intervals import TimeRange, as_utc
from roombook.records import (
    OCCUPYING_STATUSES,
    Blackout,
    Hold,
    Reservation,
    ReservationStatus,
    Room,
)
from roombook.repository import OverlapError

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"

_OCCUPYING_SQL = ", ".join(f"'{s.value}'" for s in OCCUPYING_STATUSES)

_INSERT_HOLD = text(f"""
    INSERT INTO holds (room_id, start_at, end_at, token, phone_fingerprint, expires_at, created_at)
    SELECT :room_id, :start_at, :end_at, :token, :phone_fingerprint, :expires_at, :now
    WHERE NOT EXISTS (
        SELECT 1 FROM holds h
        WHERE h.room_id = :room_id
          AND h.expires_at > :now
          AND h.start_at < :end_at AND :start_at < h.end_at
    )
    AND NOT EXISTS (
        SELECT 1 FROM reservations r
        WHERE r.room_id = :room_id
          AND r.status IN ({_OCCUPYING_SQL})
          AND r.start_at < :end_at AND :start_at < r.end_at
    )
""").bindparams(
    bindparam("start_at", type_=DateTime()),
    bindparam("end_at", type_=DateTime()),
    bindparam("expires_at", type_=DateTime()),
    bindparam("now", type_=DateTime()),
)

_INSERT_RESERVATION = text(f"""
    INSERT INTO reservations (room_id, start_at, end_at, status, reserver_name,
                              phone_fingerprint, password_hash, created_at, updated_at)
    SELECT :room_id, :start_at, :end_at, 'confirmed', :reserver_name,
           :phone_fingerprint, :password_hash, :now, :now
    WHERE NOT EXISTS (
        SELECT 1 FROM reservations r
        WHERE r.room_id = :room_id
          AND r.status IN ({_OCCUPYING_SQL})
          AND r.start_at < :end_at AND :start_at < r.end_at
    )
""").bindparams(
    bindparam("start_at", type_=DateTime()),
    bindparam("end_at", type_=DateTime()),
    bindparam("now", type_=DateTime()),
)

_UPDATE_STATUS = text("""
    UPDATE reservations SET status = :to_status, updated_at = :now
    WHERE id = :reservation_id AND status = :from_status
""").bindparams(bindparam("now", type_=DateTime()))


def _naive(value: datetime) -> datetime:
    # columns hold naive UTC
    return as_utc(value).replace(tzinfo=None)


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _period(row) -> TimeRange:
    return TimeRange(_aware(row.start_at), _aware(row.end_at))


def _room(row: models.Room) -> Room:
    return Room(
        id=row.id,
        name=row.name,
        location=row.location or "",
        capacity=row.capacity,
        is_active=bool(row.is_active),
        open_time=row.open_time,
        close_time=row.close_time,
    )


def _hold(row: models.Hold) -> Hold:
    return Hold(
        id=row.id,
        room_id=row.room_id,
        period=_period(row),
        token=row.token,
        phone_fingerprint=row.phone_fingerprint,
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
    )


def _reservation(row: models.Reservation) -> Reservation:
    return Reservation(
        id=row.id,
        room_id=row.room_id,
        period=_period(row),
        status=ReservationStatus(row.status),
        reserver_name=row.reserver_name,
        phone_fingerprint=row.phone_fingerprint,
        password_hash=row.password_hash,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def is_serialization_failure(exc: DBAPIError) -> bool:
    # psycopg2 exposes pgcode, psycopg 3 sqlstate
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == SERIALIZATION_FAILURE


def _overlapping(query, model, period: TimeRange):
    return query.filter(model.start_at < _naive(period.end), model.end_at > _naive(period.start))


class SqlBookingRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_active_rooms(self, capacity=None, location=None) -> List[Room]:
        query = self.db.query(models.Room).filter(models.Room.is_active.is_(True))
        if capacity:
            query = query.filter(models.Room.capacity >= capacity)
        if location and location.strip():
            query = query.filter(models.Room.location.ilike(f"%{location.strip()}%"))
        return [_room(r) for r in query.order_by(models.Room.id).all()]

    def get_room(self, room_id: int) -> Optional[Room]:
        row = self.db.get(models.Room, room_id)
        return _room(row) if row else None

    def list_reservations_for_room(self, room_id, period, statuses=OCCUPYING_STATUSES) -> List[Reservation]:
        query = self.db.query(models.Reservation).filter(
            models.Reservation.room_id == room_id,
            models.Reservation.status.in_([s.value for s in statuses]),
        )
        rows = _overlapping(query, models.Reservation, period).order_by(models.Reservation.start_at)
        return [_reservation(r) for r in rows.all()]

    def list_holds_for_room(self, room_id, period, now) -> List[Hold]:
        query = self.db.query(models.Hold).filter(
            models.Hold.room_id == room_id,
            models.Hold.expires_at > _naive(now),
        )
        rows = _overlapping(query, models.Hold, period).order_by(models.Hold.start_at)
        return [_hold(r) for r in rows.all()]

    def list_blackouts(self, room_id, period) -> List[Blackout]:
        query = self.db.query(models.RoomBlackout).filter(models.RoomBlackout.room_id == room_id)
        rows = _overlapping(query, models.RoomBlackout, period).order_by(models.RoomBlackout.start_at)
        return [Blackout(r.id, r.room_id, _period(r), r.reason) for r in rows.all()]

    def insert_hold(self, room_id, period, token, phone_fingerprint, expires_at, now) -> Hold:
        params = {
            "room_id": room_id,
            "start_at": _naive(period.start),
            "end_at": _naive(period.end),
            "token": token,
            "phone_fingerprint": phone_fingerprint,
            "expires_at": _naive(expires_at),
            "now": _naive(now),
        }
        self._insert_exclusive(_INSERT_HOLD, params, f"hold on room {room_id}")
        row = self.db.query(models.Hold).filter(models.Hold.token == token).one()
        return _hold(row)

    def get_hold_by_token(self, token: str) -> Optional[Hold]:
        row = self.db.query(models.Hold).filter(models.Hold.token == token).first()
        return _hold(row) if row else None

    def delete_hold(self, hold_id: int) -> bool:
        deleted = self._commit_count(
            lambda: self.db.query(models.Hold).filter(models.Hold.id == hold_id).delete()
        )
        return deleted > 0

    def delete_expired_holds(self, now: datetime) -> int:
        return self._commit_count(
            lambda: self.db.query(models.Hold)
            .filter(models.Hold.expires_at <= _naive(now))
            .delete(synchronize_session=False)
        )

    def insert_reservation(self, room_id, period, reserver_name, phone_fingerprint, password_hash, now) -> Reservation:
        params = {
            "room_id": room_id,
            "start_at": _naive(period.start),
            "end_at": _naive(period.end),
            "reserver_name": reserver_name,
            "phone_fingerprint": phone_fingerprint,
            "password_hash": password_hash,
            "now": _naive(now),
        }
        self._insert_exclusive(_INSERT_RESERVATION, params, f"reservation on room {room_id}")
        row = (
            self.db.query(models.Reservation)
            .filter(
                models.Reservation.room_id == room_id,
                models.Reservation.start_at == params["start_at"],
                models.Reservation.end_at == params["end_at"],
                models.Reservation.status == ReservationStatus.CONFIRMED.value,
            )
            .one()
        )
        return _reservation(row)

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        row = self.db.get(models.Reservation, reservation_id)
        return _reservation(row) if row else None

    def list_reservations_by_phone_fingerprint(self, fingerprint: str) -> List[Reservation]:
        rows = self.db.query(models.Reservation).filter(
            models.Reservation.phone_fingerprint == fingerprint
        )
        return [_reservation(r) for r in rows.all()]

    def conditional_update_status(self, reservation_id, from_status, to_status, now) -> int:
        params = {
            "reservation_id": reservation_id,
            "from_status": ReservationStatus(from_status).value,
            "to_status": ReservationStatus(to_status).value,
            "now": _naive(now),
        }
        count = self._commit_count(lambda: self.db.execute(_UPDATE_STATUS, params).rowcount)
        # rows cached by get() must not mask the new status
        self.db.expire_all()
        return count

    def _insert_exclusive(self, statement, params, what: str) -> None:
        try:
            res = self.db.execute(statement, params)
            if res.rowcount != 1:
                self.db.rollback()
                raise OverlapError(f"{what} overlaps an occupied range")
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise OverlapError(f"{what} rejected by the store") from exc
        except DBAPIError as exc:
            self.db.rollback()
            if is_serialization_failure(exc):
                raise OverlapError(f"{what} lost a concurrent write") from exc
            raise
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _commit_count(self, action) -> int:
        try:
            count = action()
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return count
