"""Hostel and room: the property a fee ledger is scoped to."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from mhostel.db.session import Base


class Hostel(Base):
    """A hostel. Every student, fee, payment and staff account belongs to exactly one."""

    __tablename__ = "hostel_master"

    hostel_id = Column(Integer, primary_key=True, autoincrement=True)
    hostel_name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    rooms = relationship("Room", back_populates="hostel", cascade="all, delete-orphan")


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("hostel_id", "room_number", name="uq_room_hostel_number"),
    )

    room_id = Column(Integer, primary_key=True, autoincrement=True)
    hostel_id = Column(Integer, ForeignKey("hostel_master.hostel_id", ondelete="CASCADE"), nullable=False, index=True)
    room_number = Column(String(20), nullable=False)
    # Default monthly fee for occupants without a student-level override
    monthly_rent = Column(Numeric(12, 2), nullable=False, default=0)

    hostel = relationship("Hostel", back_populates="rooms")
    students = relationship("Student", back_populates="room")
