from sqlalchemy import Boolean, Column, Integer, String

from mhostel.db.session import Base


class PaymentMode(Base):
    """Read-only lookup: Cash, UPI, Card, Bank Transfer."""

    __tablename__ = "payment_modes"

    payment_mode_id = Column(Integer, primary_key=True, autoincrement=True)
    payment_mode_name = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
