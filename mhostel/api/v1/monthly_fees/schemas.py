"""Monthly fee schemas: the wire contract shared by the ledger routes and the reconciler client."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from mhostel.core.schemas import Money

FEE_MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class FeeRecord(BaseModel):
    fee_id: Optional[int] = None
    student_id: int
    hostel_id: int
    fee_month: str
    amount: Money = Field(..., ge=0)
    balance: Money = Field(..., ge=0)
    fee_status: str
    due_date: Optional[date] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    room_number: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_part_only(cls, value):
        # Some ledgers send full timestamps; only the date is meaningful
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value


class FeeSummary(BaseModel):
    total_paid: Money = Decimal("0")
    total_pending: Money = Decimal("0")


class FeeSnapshot(BaseModel):
    """One atomic read of the ledger: aggregates plus every fee record."""

    summary: FeeSummary
    fees: List[FeeRecord]


class PaymentModeRef(BaseModel):
    id: int
    name: str


class CollectionRequest(BaseModel):
    student_id: int
    hostel_id: int
    amount: Money = Field(..., gt=0)
    payment_date: date
    due_date: Optional[date] = None
    payment_mode_id: int
    transaction_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = ""
    fee_month: str = Field(..., pattern=FEE_MONTH_PATTERN)


class RecordPaymentResult(BaseModel):
    payment_id: int
    fee_id: int
    amount: Money
    balance: Money
    fee_status: str
    duplicate: bool = False


class GenerateFeesRequest(BaseModel):
    fee_month: str = Field(..., pattern=FEE_MONTH_PATTERN)
    due_date: Optional[date] = None


class GenerateFeesResult(BaseModel):
    fee_month: str
    created: int
    skipped: int


class PaymentHistoryItem(BaseModel):
    payment_id: int
    fee_id: int
    student_id: int
    fee_month: str
    amount: Money
    payment_date: date
    payment_mode_id: int
    payment_mode_name: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
