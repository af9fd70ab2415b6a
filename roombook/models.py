from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)

from roombook.db import Base


class Room(Base):
    __tablename__ = "rooms"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    location = Column(String, nullable=False, default="")
    capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    created_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="room_capacity_positive"),
    )


class RoomBlackout(Base):
    __tablename__ = "room_blackouts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    reason = Column(String)
    created_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="blackout_period_valid"),
        Index("ix_blackouts_room_period", "room_id", "start_at", "end_at"),
    )


class Hold(Base):
    __tablename__ = "holds"
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    token = Column(String, nullable=False, unique=True)
    phone_fingerprint = Column(String)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="hold_period_valid"),
        Index("ix_holds_room_period", "room_id", "start_at", "end_at"),
        Index("ix_holds_expires_at", "expires_at"),
    )


class Reservation(Base):
    __tablename__ = "reservations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="confirmed")  # confirmed|ongoing|cancelled
    reserver_name = Column(String, nullable=False)
    phone_fingerprint = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="reservation_period_valid"),
        CheckConstraint(
            "status in ('confirmed','ongoing','cancelled')", name="reservation_status_valid"
        ),
        Index("ix_reservations_room_period", "room_id", "start_at", "end_at"),
    )
