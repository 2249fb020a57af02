from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from mhostel.core.enums import StudentStatus
from mhostel.db.session import Base


class Student(Base):
    """Resident of a hostel. status: 1 = active, 0 = inactive (e.g. registered but not admitted)."""

    __tablename__ = "students"

    student_id = Column(Integer, primary_key=True, autoincrement=True)
    hostel_id = Column(Integer, ForeignKey("hostel_master.hostel_id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.room_id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    status = Column(Integer, nullable=False, default=StudentStatus.ACTIVE.value)
    # Overrides the room rent when billing a cycle
    monthly_fee = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    room = relationship("Room", back_populates="students")
    fees = relationship("MonthlyFee", back_populates="student")
