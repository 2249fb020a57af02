"""Monthly fee: one student's obligation for one billing month."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from mhostel.core.enums import FeeStatus
from mhostel.db.session import Base


class MonthlyFee(Base):
    """
    Fee obligation keyed by (student_id, fee_month).
    balance is only ever changed by recording a payment; rows are never deleted.
    """

    __tablename__ = "monthly_fees"
    __table_args__ = (
        UniqueConstraint("student_id", "fee_month", name="uq_monthly_fee_student_month"),
        CheckConstraint(
            "fee_status IN ('Fully Paid','Pending','Overdue','Partially Paid')",
            name="chk_monthly_fee_status",
        ),
        CheckConstraint("balance >= 0 AND balance <= amount", name="chk_monthly_fee_balance"),
    )

    fee_id = Column(Integer, primary_key=True, autoincrement=True)
    hostel_id = Column(Integer, ForeignKey("hostel_master.hostel_id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    fee_month = Column(String(7), nullable=False)  # YYYY-MM
    amount = Column(Numeric(12, 2), nullable=False)
    balance = Column(Numeric(12, 2), nullable=False)
    fee_status = Column(String(20), nullable=False, default=FeeStatus.PENDING.value)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student", back_populates="fees")
    payments = relationship("FeePayment", back_populates="fee", order_by="FeePayment.payment_id")
