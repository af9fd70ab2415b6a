"""
Storage capability consumed by the booking components.

``BookingRepository`` is the contract; ``SqlBookingRepository`` (see
``roombook.sql_repository``) is the production adapter and
``InMemoryBookingRepository`` the test/local double. Both must refuse an
overlapping insert atomically by raising ``OverlapError``.
"""
from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, time
from threading import Lock
from typing import Dict, Iterable, List, Optional, Protocol

from roombook.intervals import TimeRange, overlaps
from roombook.records import (
    OCCUPYING_STATUSES,
    Blackout,
    Hold,
    Reservation,
    ReservationStatus,
    Room,
)


class OverlapError(Exception):
    """The store refused a write because it would overlap an occupied range."""


class BookingRepository(Protocol):
    def list_active_rooms(
        self, capacity: Optional[int] = None, location: Optional[str] = None
    ) -> List[Room]: ...

    def get_room(self, room_id: int) -> Optional[Room]: ...

    def list_reservations_for_room(
        self,
        room_id: int,
        period: TimeRange,
        statuses: Iterable[ReservationStatus] = OCCUPYING_STATUSES,
    ) -> List[Reservation]: ...

    def list_holds_for_room(self, room_id: int, period: TimeRange, now: datetime) -> List[Hold]: ...

    def list_blackouts(self, room_id: int, period: TimeRange) -> List[Blackout]: ...

    def insert_hold(
        self,
        room_id: int,
        period: TimeRange,
        token: str,
        phone_fingerprint: Optional[str],
        expires_at: datetime,
        now: datetime,
    ) -> Hold: ...

    def get_hold_by_token(self, token: str) -> Optional[Hold]: ...

    def delete_hold(self, hold_id: int) -> bool: ...

    def delete_expired_holds(self, now: datetime) -> int: ...

    def insert_reservation(
        self,
        room_id: int,
        period: TimeRange,
        reserver_name: str,
        phone_fingerprint: str,
        password_hash: str,
        now: datetime,
    ) -> Reservation: ...

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]: ...

    def list_reservations_by_phone_fingerprint(self, fingerprint: str) -> List[Reservation]: ...

    def conditional_update_status(
        self,
        reservation_id: int,
        from_status: ReservationStatus,
        to_status: ReservationStatus,
        now: datetime,
    ) -> int: ...


def location_matches(location: str, wanted: Optional[str]) -> bool:
    if not wanted:
        return True
    return wanted.strip().lower() in (location or "").lower()


class InMemoryBookingRepository:
    def __init__(self) -> None:
        self._rooms: Dict[int, Room] = {}
        self._blackouts: Dict[int, Blackout] = {}
        self._holds: Dict[int, Hold] = {}
        self._reservations: Dict[int, Reservation] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    # Administration, outside the booking flows

    def add_room(
        self,
        name: str,
        location: str,
        capacity: int,
        open_time: time = time(9, 0),
        close_time: time = time(18, 0),
        is_active: bool = True,
    ) -> Room:
        with self._lock:
            room = Room(next(self._ids), name, location, capacity, is_active, open_time, close_time)
            self._rooms[room.id] = room
            return room

    def add_blackout(self, room_id: int, period: TimeRange, reason: Optional[str] = None) -> Blackout:
        with self._lock:
            blackout = Blackout(next(self._ids), room_id, period, reason)
            self._blackouts[blackout.id] = blackout
            return blackout

    # Rooms and conflict sources

    def list_active_rooms(self, capacity=None, location=None) -> List[Room]:
        with self._lock:
            rooms = [r for r in self._rooms.values() if r.is_active]
        if capacity:
            rooms = [r for r in rooms if r.capacity >= capacity]
        rooms = [r for r in rooms if location_matches(r.location, location)]
        return sorted(rooms, key=lambda r: r.id)

    def get_room(self, room_id: int) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(room_id)

    def list_reservations_for_room(self, room_id, period, statuses=OCCUPYING_STATUSES) -> List[Reservation]:
        wanted = set(statuses)
        with self._lock:
            return [
                r
                for r in self._reservations.values()
                if r.room_id == room_id and r.status in wanted and overlaps(r.period, period)
            ]

    def list_holds_for_room(self, room_id, period, now) -> List[Hold]:
        with self._lock:
            return self._live_holds(room_id, period, now)

    def list_blackouts(self, room_id, period) -> List[Blackout]:
        with self._lock:
            return [
                b
                for b in self._blackouts.values()
                if b.room_id == room_id and overlaps(b.period, period)
            ]

    # Holds

    def insert_hold(self, room_id, period, token, phone_fingerprint, expires_at, now) -> Hold:
        with self._lock:
            if any(h.token == token for h in self._holds.values()):
                raise OverlapError("duplicate hold token")
            if self._live_holds(room_id, period, now) or self._occupying(room_id, period):
                raise OverlapError(f"room {room_id} is already held or reserved")
            hold = Hold(next(self._ids), room_id, period, token, phone_fingerprint, expires_at, now)
            self._holds[hold.id] = hold
            return hold

    def get_hold_by_token(self, token: str) -> Optional[Hold]:
        with self._lock:
            return next((h for h in self._holds.values() if h.token == token), None)

    def delete_hold(self, hold_id: int) -> bool:
        with self._lock:
            return self._holds.pop(hold_id, None) is not None

    def delete_expired_holds(self, now: datetime) -> int:
        with self._lock:
            expired = [h.id for h in self._holds.values() if not h.is_live(now)]
            for hold_id in expired:
                del self._holds[hold_id]
            return len(expired)

    # Reservations

    def insert_reservation(self, room_id, period, reserver_name, phone_fingerprint, password_hash, now) -> Reservation:
        with self._lock:
            if self._occupying(room_id, period):
                raise OverlapError(f"room {room_id} is already reserved")
            reservation = Reservation(
                id=next(self._ids),
                room_id=room_id,
                period=period,
                status=ReservationStatus.CONFIRMED,
                reserver_name=reserver_name,
                phone_fingerprint=phone_fingerprint,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._reservations[reservation.id] = reservation
            return reservation

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        with self._lock:
            return self._reservations.get(reservation_id)

    def list_reservations_by_phone_fingerprint(self, fingerprint: str) -> List[Reservation]:
        with self._lock:
            return [r for r in self._reservations.values() if r.phone_fingerprint == fingerprint]

    def conditional_update_status(self, reservation_id, from_status, to_status, now) -> int:
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is None or current.status != from_status:
                return 0
            self._reservations[reservation_id] = replace(current, status=to_status, updated_at=now)
            return 1

    # Callers hold self._lock

    def _live_holds(self, room_id, period, now) -> List[Hold]:
        return [
            h
            for h in self._holds.values()
            if h.room_id == room_id and h.is_live(now) and overlaps(h.period, period)
        ]

    def _occupying(self, room_id, period) -> List[Reservation]:
        return [
            r
            for r in self._reservations.values()
            if r.room_id == room_id and r.status in OCCUPYING_STATUSES and overlaps(r.period, period)
        ]
