"""
Slot grid generation for a single room.

The grid starts at the room's opening time and advances by ``unit`` minutes
until closing time. Every step yields a ``[ts, ts + length)`` candidate that
is either available or tagged with the first matching reason, in priority
order::

    outside_hours > buffer_blocked > blackout > conflict

Unavailable steps are kept so callers can render a dense schedule.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from roombook.errors import InvalidInputError
from roombook.intervals import TimeRange, apply_buffer, overlaps, utcnow
from roombook.records import OCCUPYING_STATUSES, Room
from roombook.repository import BookingRepository

logger = logging.getLogger(__name__)


class SlotReason(str, enum.Enum):
    OUTSIDE_HOURS = "outside_hours"
    BUFFER_BLOCKED = "buffer_blocked"
    BLACKOUT = "blackout"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class Slot:
    period: TimeRange
    available: bool
    reason: Optional[SlotReason] = None

    def to_dict(self) -> dict:
        return {
            **self.period.to_dict(),
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass(frozen=True)
class SlotRules:
    length: int
    unit: int
    buffer_before: int = 0
    buffer_after: int = 0

    def validate(self) -> None:
        if self.unit <= 0 or self.length <= 0:
            raise InvalidInputError("slot length and unit must be positive")
        if self.buffer_before < 0 or self.buffer_after < 0:
            raise InvalidInputError("buffer must not be negative")


@dataclass(frozen=True)
class SlotSchedule:
    room: Room
    rules: SlotRules
    slots: List[Slot] = field(default_factory=list)

    @property
    def available(self) -> List[Slot]:
        return [s for s in self.slots if s.available]

    def to_dict(self) -> dict:
        return {
            "room": self.room.summary(),
            "rules": {
                "length": self.rules.length,
                "unit": self.rules.unit,
                "buffer_before": self.rules.buffer_before,
                "buffer_after": self.rules.buffer_after,
                "open_time": self.room.open_time.strftime("%H:%M"),
                "close_time": self.room.close_time.strftime("%H:%M"),
            },
            "slots": [s.to_dict() for s in self.slots],
        }


def business_hours(room: Room, day: date) -> Optional[TimeRange]:
    """Opening hours of ``room`` on ``day`` (UTC reference day), or None if closed."""
    open_at = datetime.combine(day, room.open_time, tzinfo=timezone.utc)
    close_at = datetime.combine(day, room.close_time, tzinfo=timezone.utc)
    if open_at >= close_at:
        return None
    return TimeRange(open_at, close_at)


def classify(
    candidate: TimeRange,
    hours: TimeRange,
    blackouts: Sequence[TimeRange],
    occupied: Sequence[TimeRange],
    rules: SlotRules,
    now: datetime,
) -> Slot:
    """Tag one candidate. ``occupied`` ranges must already carry the buffers."""
    if candidate.start < now or not hours.contains(candidate):
        return Slot(candidate, False, SlotReason.OUTSIDE_HOURS)
    if not hours.contains(apply_buffer(candidate, rules.buffer_before, rules.buffer_after)):
        return Slot(candidate, False, SlotReason.BUFFER_BLOCKED)
    if any(overlaps(candidate, b) for b in blackouts):
        return Slot(candidate, False, SlotReason.BLACKOUT)
    if any(overlaps(candidate, o) for o in occupied):
        return Slot(candidate, False, SlotReason.CONFLICT)
    return Slot(candidate, True)


class SlotGenerator:
    def __init__(self, repo: BookingRepository, clock: Callable[[], datetime] = utcnow):
        self.repo = repo
        self.clock = clock

    def generate(
        self,
        room_id: int,
        day: date,
        length: int,
        unit: int,
        buffer_before: int = 0,
        buffer_after: int = 0,
    ) -> SlotSchedule:
        rules = SlotRules(length, unit, buffer_before, buffer_after)
        rules.validate()
        room = self._load_room(room_id)
        return SlotSchedule(room, rules, self._day_grid(room, day, rules, self.clock()))

    def generate_window(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        length: int,
        unit: int,
        buffer_before: int = 0,
        buffer_after: int = 0,
    ) -> SlotSchedule:
        """Grids of every day touched by [start, end), clipped to the window."""
        rules = SlotRules(length, unit, buffer_before, buffer_after)
        rules.validate()
        now = self.clock()
        if not start < end:
            raise InvalidInputError("start must be before end")
        if end <= now:
            raise InvalidInputError("time window must be in the future")
        room = self._load_room(room_id)
        window = TimeRange(start, end)

        slots: List[Slot] = []
        day = start.astimezone(timezone.utc).date()
        last_day = (end - timedelta(microseconds=1)).astimezone(timezone.utc).date()
        while day <= last_day:
            slots.extend(s for s in self._day_grid(room, day, rules, now) if window.contains(s.period))
            day += timedelta(days=1)
        return SlotSchedule(room, rules, slots)

    def _load_room(self, room_id: int) -> Room:
        room = self.repo.get_room(room_id)
        if room is None or not room.is_active:
            raise InvalidInputError("room not found or inactive")
        return room

    def _day_grid(self, room: Room, day: date, rules: SlotRules, now: datetime) -> List[Slot]:
        hours = business_hours(room, day)
        if hours is None:
            return []

        # occupied ranges ending just before opening still reach in once buffered
        lookup = TimeRange(
            hours.start - timedelta(minutes=rules.buffer_after),
            hours.end + timedelta(minutes=rules.buffer_before),
        )
        blackouts = [b.period for b in self.repo.list_blackouts(room.id, lookup)]
        occupied = [
            r.period for r in self.repo.list_reservations_for_room(room.id, lookup, OCCUPYING_STATUSES)
        ]
        occupied += [h.period for h in self.repo.list_holds_for_room(room.id, lookup, now)]
        occupied = [apply_buffer(p, rules.buffer_before, rules.buffer_after) for p in occupied]

        length = timedelta(minutes=rules.length)
        step = timedelta(minutes=rules.unit)
        slots = []
        ts = hours.start
        while ts < hours.end:
            slots.append(classify(TimeRange(ts, ts + length), hours, blackouts, occupied, rules, now))
            ts += step

        logger.debug(
            "room %s on %s: %d/%d slots available",
            room.id, day, sum(1 for s in slots if s.available), len(slots),
        )
        return slots
