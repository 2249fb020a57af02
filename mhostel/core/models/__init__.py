from mhostel.core.models.hostel import Hostel, Room
from mhostel.core.models.student import Student
from mhostel.core.models.payment_mode import PaymentMode
from mhostel.core.models.monthly_fee import MonthlyFee
from mhostel.core.models.fee_payment import FeePayment
from mhostel.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Hostel",
    "Room",
    "Student",
    "PaymentMode",
    "MonthlyFee",
    "FeePayment",
    "FeeAuditLog",
]
