"""Fee payment: one collection recorded against a monthly fee. Supports partial payments."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from mhostel.db.session import Base


class FeePayment(Base):
    __tablename__ = "fee_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_fee_payment_amount_positive"),
    )

    payment_id = Column(Integer, primary_key=True, autoincrement=True)
    fee_id = Column(Integer, ForeignKey("monthly_fees.fee_id", ondelete="RESTRICT"), nullable=False, index=True)
    hostel_id = Column(Integer, ForeignKey("hostel_master.hostel_id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_mode_id = Column(Integer, ForeignKey("payment_modes.payment_mode_id", ondelete="RESTRICT"), nullable=False)
    transaction_id = Column(String(100), nullable=True)  # UPI ref, cheque no., etc.
    notes = Column(Text, nullable=True)
    # Client-supplied key; a repeated key returns the first payment instead of recording a second one
    idempotency_key = Column(String(64), nullable=True, unique=True)
    collected_by = Column(Integer, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    fee = relationship("MonthlyFee", back_populates="payments")
    payment_mode = relationship("PaymentMode")
    collected_by_user = relationship("User", foreign_keys=[collected_by])
