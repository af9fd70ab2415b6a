import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from roombook.config import get_settings
from roombook.db import SessionLocal, init_db
from roombook.errors import BookingError, InvalidInputError, SystemFailureError
from roombook.sweeper import HoldSweeper
from routers import holds, reservations, rooms, slots

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.skip_db_init:
        init_db(seed=settings.seed_demo_data)

    sweeper = None
    if settings.hold_sweep_interval_seconds > 0:
        sweeper = HoldSweeper(SessionLocal, settings.hold_sweep_interval_seconds)
        sweeper.start()
    yield
    if sweeper is not None:
        sweeper.stop()


app = FastAPI(title="Room Booking API", version="0.1.0", lifespan=lifespan)

app.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(holds.router, prefix="/holds", tags=["holds"])
app.include_router(reservations.router, prefix="/reservations", tags=["reservations"])


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=SystemFailureError("unexpected error").to_dict())
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()})
    message = f"invalid fields: {', '.join(f for f in fields if f)}" if fields else "invalid request"
    return JSONResponse(status_code=400, content=InvalidInputError(message).to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=SystemFailureError("unexpected error").to_dict())


@app.get("/")
def root():
    return {"ok": True, "service": "roombook"}
