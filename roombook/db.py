import logging
from datetime import datetime, time, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from roombook.config import get_settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_settings().database_url


def make_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite serialises writers on its own
        return create_engine(url, connect_args={"check_same_thread": False})
    # overlap checks in the exclusive inserts read then write; anything
    # weaker than SERIALIZABLE lets two of them commit side by side
    return create_engine(url, isolation_level="SERIALIZABLE")


engine = make_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

DEMO_ROOMS = [
    # name, location, capacity, open, close
    ("Meeting Room A", "3F", 6, time(9, 0), time(18, 0)),
    ("Meeting Room B", "3F", 10, time(9, 0), time(20, 0)),
    ("Meeting Room C", "4F", 4, time(8, 0), time(22, 0)),
    ("Conference Hall", "5F", 20, time(9, 0), time(18, 0)),
]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None, seed: bool = True):
    # Import models here to create tables
    from roombook.models import Room

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    if not seed:
        return

    db = Session(bind=bind)
    try:
        if not db.query(Room).first():
            now = datetime.now(timezone.utc).replace(tzinfo=None)
            db.add_all(
                Room(
                    name=name,
                    location=location,
                    capacity=capacity,
                    is_active=True,
                    open_time=open_time,
                    close_time=close_time,
                    created_at=now,
                )
                for name, location, capacity, open_time, close_time in DEMO_ROOMS
            )
            db.commit()
            logger.info("Seeded %d demo rooms", len(DEMO_ROOMS))
    finally:
        db.close()
