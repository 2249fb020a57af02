from enum import Enum


class FeeStatus(str, Enum):
    FULLY_PAID = "Fully Paid"
    PENDING = "Pending"
    OVERDUE = "Overdue"
    PARTIALLY_PAID = "Partially Paid"


class FeeBucket(str, Enum):
    """Display-only partition of fee statuses. Pending and Overdue share Unpaid."""

    ALL = "All"
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class StaffRole(str, Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    WARDEN = "WARDEN"


class StudentStatus(int, Enum):
    INACTIVE = 0
    ACTIVE = 1
