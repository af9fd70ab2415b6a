from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional

from roombook.intervals import TimeRange


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    ONGOING = "ongoing"
    CANCELLED = "cancelled"


# statuses that occupy a room
OCCUPYING_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.ONGOING)


@dataclass(frozen=True)
class Room:
    id: int
    name: str
    location: str
    capacity: int
    is_active: bool
    open_time: time
    close_time: time

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "location": self.location}

    def to_dict(self) -> dict:
        return {
            **self.summary(),
            "capacity": self.capacity,
            "open_time": self.open_time.strftime("%H:%M"),
            "close_time": self.close_time.strftime("%H:%M"),
        }


@dataclass(frozen=True)
class Blackout:
    id: int
    room_id: int
    period: TimeRange
    reason: Optional[str] = None


@dataclass(frozen=True)
class Hold:
    id: int
    room_id: int
    period: TimeRange
    token: str
    phone_fingerprint: Optional[str]
    expires_at: datetime
    created_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class Reservation:
    id: int
    room_id: int
    period: TimeRange
    status: ReservationStatus
    reserver_name: str
    phone_fingerprint: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
