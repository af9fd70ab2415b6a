import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from roombook.cleanup import run_best_effort
from roombook.credentials import PasswordHashing, normalize_phone, phone_fingerprint
from roombook.errors import ConflictError, HoldExpiredError, InvalidInputError
from roombook.intervals import TimeRange, utcnow
from roombook.records import ReservationStatus, Room
from roombook.repository import BookingRepository, OverlapError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class ConfirmedReservation:
    id: int
    room: Room
    period: TimeRange
    status: ReservationStatus

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room": self.room.summary(),
            "period": self.period.to_dict(),
            "status": self.status.value,
        }


class ReservationConfirmation:
    def __init__(
        self,
        repo: BookingRepository,
        hashing: PasswordHashing,
        clock: Callable[[], datetime] = utcnow,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ):
        self.repo = repo
        self.hashing = hashing
        self.clock = clock
        self.min_password_length = min_password_length

    def confirm(self, token: str, name: str, phone: str, password: str) -> ConfirmedReservation:
        """
        Turn a live hold into a confirmed reservation.

        An unknown token (including one already consumed by an earlier
        confirmation) is invalid input; a known but expired one is
        hold_expired. The hold is retired best-effort afterwards: if that
        delete fails, its expiry reclaims it.
        """
        hold = self.repo.get_hold_by_token(token) if token else None
        if hold is None:
            raise InvalidInputError("invalid hold token")

        now = self.clock()
        if not hold.is_live(now):
            run_best_effort(self.repo.delete_hold, "delete of expired hold", hold.id)
            raise HoldExpiredError("hold expired")

        name = (name or "").strip()
        if not name:
            raise InvalidInputError("reserver name is required")
        if not normalize_phone(phone):
            raise InvalidInputError("phone number is required")
        if not password or len(password) < self.min_password_length:
            raise InvalidInputError("password is too weak")

        room = self.repo.get_room(hold.room_id)
        if room is None:
            raise InvalidInputError("room not found")

        try:
            reservation = self.repo.insert_reservation(
                room_id=hold.room_id,
                period=hold.period,
                reserver_name=name,
                phone_fingerprint=phone_fingerprint(phone),
                password_hash=self.hashing.hash(password),
                now=now,
            )
        except OverlapError as exc:
            logger.info("confirmation of hold %s lost a race: %s", hold.id, exc)
            raise ConflictError("reservation overlaps an existing one") from exc

        run_best_effort(self.repo.delete_hold, "delete of confirmed hold", hold.id)
        logger.info("reservation %s confirmed on room %s", reservation.id, room.id)
        return ConfirmedReservation(reservation.id, room, reservation.period, reservation.status)
