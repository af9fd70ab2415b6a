import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from roombook.errors import InvalidInputError
from roombook.intervals import TimeRange, format_instant, utcnow
from roombook.records import OCCUPYING_STATUSES, Room
from roombook.repository import BookingRepository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def validate_window(start: datetime, end: datetime, now: datetime) -> TimeRange:
    """Reject empty or inverted windows and windows lying entirely in the past."""
    if not start < end:
        raise InvalidInputError("start must be before end")
    if end <= now:
        raise InvalidInputError("time window must be in the future")
    return TimeRange(start, end)


@dataclass(frozen=True)
class SearchResult:
    rooms: List[Room]
    total: int
    as_of: datetime

    def to_dict(self) -> dict:
        return {
            "rooms": [r.to_dict() for r in self.rooms],
            "total": self.total,
            "as_of": format_instant(self.as_of),
        }


class AvailabilitySearch:
    def __init__(self, repo: BookingRepository, clock: Callable[[], datetime] = utcnow):
        self.repo = repo
        self.clock = clock

    def search(
        self,
        start: datetime,
        end: datetime,
        capacity: Optional[int] = None,
        location: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> SearchResult:
        now = self.clock()
        window = validate_window(start, end, now)
        if capacity is not None and capacity <= 0:
            raise InvalidInputError("capacity must be positive")
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise InvalidInputError("invalid page or page_size")

        eligible = [
            room
            for room in self.repo.list_active_rooms(capacity=capacity, location=location)
            if not self.repo.list_reservations_for_room(room.id, window, OCCUPYING_STATUSES)
        ]
        offset = (page - 1) * page_size
        logger.debug("availability search matched %d rooms", len(eligible))
        return SearchResult(eligible[offset:offset + page_size], len(eligible), now)
