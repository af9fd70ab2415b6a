from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from roombook.availability import AvailabilitySearch
from roombook.config import Settings, get_settings
from roombook.credentials import PasswordHashing
from roombook.db import get_db
from roombook.holds import HoldManager
from roombook.intervals import utcnow
from roombook.my_reservations import MyReservations
from roombook.reservations import ReservationConfirmation
from roombook.slots import SlotGenerator
from roombook.sql_repository import SqlBookingRepository


def get_repository(db: Session = Depends(get_db)):
    return SqlBookingRepository(db)


def get_clock():
    return utcnow


@lru_cache
def get_password_hashing() -> PasswordHashing:
    return PasswordHashing()


def get_slot_generator(repo=Depends(get_repository), clock=Depends(get_clock)) -> SlotGenerator:
    return SlotGenerator(repo, clock)


def get_availability_search(repo=Depends(get_repository), clock=Depends(get_clock)) -> AvailabilitySearch:
    return AvailabilitySearch(repo, clock)


def get_hold_manager(
    repo=Depends(get_repository),
    clock=Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> HoldManager:
    return HoldManager(repo, clock, default_ttl_seconds=settings.hold_ttl_seconds)


def get_reservation_confirmation(
    repo=Depends(get_repository),
    clock=Depends(get_clock),
    hashing: PasswordHashing = Depends(get_password_hashing),
    settings: Settings = Depends(get_settings),
) -> ReservationConfirmation:
    return ReservationConfirmation(repo, hashing, clock, min_password_length=settings.password_min_length)


def get_my_reservations(
    repo=Depends(get_repository),
    clock=Depends(get_clock),
    hashing: PasswordHashing = Depends(get_password_hashing),
) -> MyReservations:
    return MyReservations(repo, hashing, clock)
