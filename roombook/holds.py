import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from roombook.availability import validate_window
from roombook.config import DEFAULT_HOLD_TTL_SECONDS
from roombook.credentials import phone_fingerprint
from roombook.errors import ConflictError, InvalidInputError
from roombook.intervals import TimeRange, format_instant, utcnow
from roombook.records import OCCUPYING_STATUSES
from roombook.repository import BookingRepository, OverlapError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


def new_hold_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass(frozen=True)
class HoldGrant:
    token: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {"token": self.token, "expires_at": format_instant(self.expires_at)}


class HoldManager:
    def __init__(
        self,
        repo: BookingRepository,
        clock: Callable[[], datetime] = utcnow,
        default_ttl_seconds: int = DEFAULT_HOLD_TTL_SECONDS,
    ):
        self.repo = repo
        self.clock = clock
        self.default_ttl_seconds = default_ttl_seconds

    def create_hold(
        self,
        room_id: int,
        period: TimeRange,
        ttl_seconds: Optional[int] = None,
        phone: Optional[str] = None,
    ) -> HoldGrant:
        """
        Claim ``period`` on ``room_id`` until the hold expires.

        The overlap pre-check only fails fast; the store's exclusive insert is
        what actually keeps two holds apart.
        """
        now = self.clock()
        validate_window(period.start, period.end, now)
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise InvalidInputError("ttl must be positive")

        room = self.repo.get_room(room_id)
        if room is None or not room.is_active:
            raise InvalidInputError("room not found or inactive")

        if self.repo.list_reservations_for_room(room_id, period, OCCUPYING_STATUSES) or \
                self.repo.list_holds_for_room(room_id, period, now):
            raise ConflictError("slot already held or reserved")

        expires_at = now + timedelta(seconds=ttl)
        try:
            hold = self.repo.insert_hold(
                room_id=room_id,
                period=period,
                token=new_hold_token(),
                phone_fingerprint=phone_fingerprint(phone) if phone else None,
                expires_at=expires_at,
                now=now,
            )
        except OverlapError as exc:
            logger.info("hold on room %s lost a race: %s", room_id, exc)
            raise ConflictError("slot already held or reserved") from exc

        logger.info("hold %s created on room %s, expires %s", hold.id, room_id, format_instant(expires_at))
        return HoldGrant(hold.token, hold.expires_at)

    def purge_expired(self) -> int:
        """Delete every hold past its expiry. Read paths never need this."""
        count = self.repo.delete_expired_holds(self.clock())
        if count:
            logger.info("purged %d expired holds", count)
        return count
