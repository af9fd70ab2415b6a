from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from roombook.dependencies import get_hold_manager
from roombook.errors import InvalidInputError
from roombook.holds import HoldManager
from roombook.intervals import TimeRange, as_utc

router = APIRouter()


class CreateHoldBody(BaseModel):
    room_id: int
    start: datetime
    end: datetime
    phone: str | None = None
    ttl_seconds: int | None = None


@router.post("", status_code=201)
def create_hold(body: CreateHoldBody, holds: HoldManager = Depends(get_hold_manager)):
    """
    Place a short-lived exclusive hold on [start, end) of a room.

    409 if the range overlaps a live hold or a confirmed/ongoing reservation,
    including when a concurrent request wins the race after the pre-check.
    """
    start, end = as_utc(body.start), as_utc(body.end)
    if not start < end:
        raise InvalidInputError("start must be before end")
    grant = holds.create_hold(body.room_id, TimeRange(start, end), body.ttl_seconds, body.phone)
    return grant.to_dict()
