from fastapi import APIRouter, Depends
from pydantic import BaseModel

from roombook.dependencies import get_my_reservations, get_reservation_confirmation
from roombook.my_reservations import MyReservations
from roombook.reservations import ReservationConfirmation

router = APIRouter()


class ConfirmBody(BaseModel):
    hold_token: str
    name: str
    phone: str
    password: str


class AuthBody(BaseModel):
    phone: str
    password: str


@router.post("", status_code=201)
def confirm_reservation(
    body: ConfirmBody,
    confirmation: ReservationConfirmation = Depends(get_reservation_confirmation),
):
    """
    Convert a live hold into a confirmed reservation.
      - 400: unknown (or already used) hold token, weak password
      - 410: hold expired
      - 409: another reservation took the range first
    """
    reservation = confirmation.confirm(body.hold_token, body.name, body.phone, body.password)
    return reservation.to_dict()


@router.post("/mine")
def list_my_reservations(body: AuthBody, mine: MyReservations = Depends(get_my_reservations)):
    reservations = mine.list_by_auth(body.phone, body.password)
    return {"reservations": [r.to_dict() for r in reservations]}


@router.post("/{reservation_id}/cancel")
def cancel_reservation(
    reservation_id: int,
    body: AuthBody,
    mine: MyReservations = Depends(get_my_reservations),
):
    mine.cancel(reservation_id, body.phone, body.password)
    return {"id": reservation_id, "status": "cancelled"}
