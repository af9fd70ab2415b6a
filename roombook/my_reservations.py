"""Self-service listing and cancellation keyed by phone + password."""
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List

from roombook.credentials import PasswordHashing, phone_fingerprint
from roombook.errors import AuthFailedError, ConflictError, PolicyViolationError
from roombook.intervals import TimeRange, format_instant, utcnow
from roombook.records import Reservation, ReservationStatus
from roombook.repository import BookingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MyReservation:
    id: int
    room: dict
    status: ReservationStatus
    period: TimeRange
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room": self.room,
            "status": self.status.value,
            "period": self.period.to_dict(),
            "created_at": format_instant(self.created_at),
        }


class MyReservations:
    def __init__(
        self,
        repo: BookingRepository,
        hashing: PasswordHashing,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.hashing = hashing
        self.clock = clock

    def list_by_auth(self, phone: str, password: str) -> List[MyReservation]:
        candidates = self.repo.list_reservations_by_phone_fingerprint(phone_fingerprint(phone))
        if not candidates:
            self.hashing.verify_nothing(password)
            raise AuthFailedError()

        # rows of one phone may come from different hash schemes
        verified = [r for r in candidates if self.hashing.verify(password, r.password_hash)]
        if not verified:
            raise AuthFailedError()

        verified.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        rooms: Dict[int, dict] = {}
        result = []
        for r in verified:
            if r.room_id not in rooms:
                room = self.repo.get_room(r.room_id)
                rooms[r.room_id] = room.summary() if room else {"id": r.room_id, "name": "", "location": ""}
            result.append(MyReservation(r.id, rooms[r.room_id], r.status, r.period, r.created_at))
        return result

    def cancel(self, reservation_id: int, phone: str, password: str) -> bool:
        """
        Cancel a reservation that has not started yet.

        The status-conditioned update is the only serialization point: if a
        concurrent cancel or status change got there first, nothing is
        updated and the caller gets a conflict.
        """
        reservation = self._authenticate(reservation_id, phone, password)

        now = self.clock()
        if reservation.period.start <= now:
            raise PolicyViolationError("cannot cancel after start")

        updated = self.repo.conditional_update_status(
            reservation_id, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, now
        )
        if updated == 0:
            raise ConflictError("reservation is no longer confirmed")
        logger.info("reservation %s cancelled", reservation_id)
        return True

    def _authenticate(self, reservation_id: int, phone: str, password: str) -> Reservation:
        reservation = self.repo.get_reservation(reservation_id)
        if reservation is None:
            self.hashing.verify_nothing(password)
            raise AuthFailedError()
        if not hmac.compare_digest(reservation.phone_fingerprint, phone_fingerprint(phone)):
            self.hashing.verify_nothing(password)
            raise AuthFailedError()
        if not self.hashing.verify(password, reservation.password_hash):
            raise AuthFailedError()
        return reservation
