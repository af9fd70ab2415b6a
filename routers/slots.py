from datetime import date, datetime

from fastapi import APIRouter, Depends, Query

from roombook.dependencies import get_slot_generator
from roombook.errors import InvalidInputError
from roombook.intervals import as_utc
from roombook.slots import SlotGenerator

router = APIRouter()


@router.get("")
def list_slots(
    room_id: int = Query(...),
    day: date | None = Query(default=None, alias="date"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    length: int = Query(...),
    unit: int = Query(...),
    buffer: int = Query(default=0),
    buffer_before: int | None = Query(default=None),
    buffer_after: int | None = Query(default=None),
    generator: SlotGenerator = Depends(get_slot_generator),
):
    """
    Slot grid of a room, one entry per ``unit`` step from opening time:
      - available: true when the slot can be held
      - reason: outside_hours | buffer_blocked | blackout | conflict otherwise

    Pass either ``date`` (one business day) or ``start``/``end`` (every day
    touched by the window, clipped to it). ``buffer`` pads both sides;
    ``buffer_before``/``buffer_after`` override one side each.
    """
    before = buffer if buffer_before is None else buffer_before
    after = buffer if buffer_after is None else buffer_after

    if day is not None:
        schedule = generator.generate(room_id, day, length, unit, before, after)
    elif start is not None and end is not None:
        schedule = generator.generate_window(
            room_id, as_utc(start), as_utc(end), length, unit, before, after
        )
    else:
        raise InvalidInputError("either date or start/end is required")
    return schedule.to_dict()
