from datetime import datetime

from fastapi import APIRouter, Depends, Query

from roombook.availability import AvailabilitySearch
from roombook.dependencies import get_availability_search, get_repository
from roombook.errors import NotFoundError
from roombook.intervals import as_utc

router = APIRouter()


@router.get("")
def search_rooms(
    start: datetime = Query(...),
    end: datetime = Query(...),
    capacity: int | None = Query(default=None),
    location: str | None = Query(default=None),
    page: int = Query(default=1),
    page_size: int = Query(default=50),
    search: AvailabilitySearch = Depends(get_availability_search),
):
    """Rooms with no confirmed or ongoing reservation in [start, end). Ignores holds and blackouts."""
    result = search.search(as_utc(start), as_utc(end), capacity, location, page, page_size)
    return result.to_dict()


@router.get("/{room_id}")
def get_room(room_id: int, repo=Depends(get_repository)):
    room = repo.get_room(room_id)
    if room is None or not room.is_active:
        raise NotFoundError("room not found")
    return room.to_dict()
