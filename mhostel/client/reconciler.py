"""
Fee collection reconciler.

Holds one hostel's fee ledger snapshot, derives the filtered/bucketed view and its
aggregates, and records payments. Balances and statuses are never patched locally:
after every successful payment the whole snapshot is fetched again, so every derived
value always comes from a single server read.
"""

import logging
import uuid
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from mhostel.api.v1.monthly_fees.schemas import (
    CollectionRequest,
    FeeRecord,
    FeeSnapshot,
    FeeSummary,
    PaymentModeRef,
    RecordPaymentResult,
)
from mhostel.client.api import LedgerClient
from mhostel.client.errors import AmountValidationError, LedgerError, LedgerServerError
from mhostel.client.notify import Notifier
from mhostel.client.session import SessionContext
from mhostel.core.enums import FeeBucket, FeeStatus

logger = logging.getLogger(__name__)

PAYMENT_FAILED_MESSAGE = "Failed to record payment"
PAYMENT_RECORDED_MESSAGE = "Payment recorded successfully!"
INVALID_AMOUNT_TITLE = "Invalid Amount"
INVALID_AMOUNT_MESSAGE = "Please enter a valid amount."
CENT = Decimal("0.01")

_STATUS_BUCKETS: Dict[str, FeeBucket] = {
    FeeStatus.FULLY_PAID.value: FeeBucket.PAID,
    FeeStatus.PARTIALLY_PAID.value: FeeBucket.PARTIAL,
    FeeStatus.PENDING.value: FeeBucket.UNPAID,
    FeeStatus.OVERDUE.value: FeeBucket.UNPAID,
}

# Route names other screens use to open the collection view on a tab
_ROUTE_TABS: Dict[str, FeeBucket] = {
    "Unpaid": FeeBucket.UNPAID,
    "Partially Paid": FeeBucket.PARTIAL,
    "Paid": FeeBucket.PAID,
}


def classify(fee: FeeRecord) -> FeeBucket:
    """Bucket a fee for display. Unknown statuses fall back to Unpaid."""
    return _STATUS_BUCKETS.get(fee.fee_status, FeeBucket.UNPAID)


def is_paid(fee: FeeRecord) -> bool:
    return fee.fee_status == FeeStatus.FULLY_PAID.value


def full_name(fee: FeeRecord) -> str:
    return f"{fee.first_name or ''} {fee.last_name or ''}"


def filter_fees(fees: Iterable[FeeRecord], active_tab: FeeBucket, search_term: str = "") -> List[FeeRecord]:
    """Fees in active_tab whose "first last" name contains search_term, case-insensitively. Input order is kept."""
    needle = (search_term or "").lower()
    tab = FeeBucket(active_tab)
    return [
        fee
        for fee in fees
        if needle in full_name(fee).lower()
        and (tab == FeeBucket.ALL or classify(fee) == tab)
    ]


def parse_amount(amount_input) -> Decimal:
    text = "" if amount_input is None else str(amount_input).strip()
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise AmountValidationError(INVALID_AMOUNT_MESSAGE)
    # The ledger books whole cents; anything that rounds to 0.00 is not a payment
    if not amount.is_finite() or amount.quantize(CENT) <= 0:
        raise AmountValidationError(INVALID_AMOUNT_MESSAGE)
    return amount


def format_amount(amount: Decimal) -> str:
    """Plain text for an input field: 5000.00 -> "5000", 1250.50 -> "1250.5"."""
    normalized = amount.normalize()
    return format(normalized, "f")


def paid_amount(fee: FeeRecord) -> Decimal:
    return fee.amount - fee.balance


def progress_pct(fee: FeeRecord) -> float:
    if fee.amount <= 0:
        return 0.0
    return float(min(max(paid_amount(fee) / fee.amount * 100, Decimal("0")), Decimal("100")))


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    VALIDATION = "validation"
    SERVER = "server"
    TRANSPORT = "transport"
    BUSY = "busy"


class CollectionOutcome(BaseModel):
    kind: OutcomeKind
    message: Optional[str] = None
    result: Optional[RecordPaymentResult] = None

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


class CollectionDraft(BaseModel):
    """Form values of the open collection. Survives failed submissions unchanged."""

    fee: FeeRecord
    amount: str
    payment_mode_id: int
    transaction_id: str = ""
    notes: str = ""


class FeeCollectionReconciler:
    def __init__(
        self,
        session: SessionContext,
        client: Optional[LedgerClient] = None,
        notifier: Optional[Notifier] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.client = client or LedgerClient(session)
        self.notifier = notifier or Notifier()
        self._today = today

        self.snapshot: Optional[FeeSnapshot] = None
        self.payment_modes: List[PaymentModeRef] = []
        self.active_tab: FeeBucket = FeeBucket.ALL
        self.search: str = ""

        self.loading = False
        self.pay_loading = False

        self.draft: Optional[CollectionDraft] = None
        # One key per (student_id, fee_month), kept across failed attempts, dropped after success
        self._idempotency_keys: Dict[Tuple[int, str], str] = {}
        self._closed = False

    # --- Snapshot ---
    @property
    def fees(self) -> List[FeeRecord]:
        return self.snapshot.fees if self.snapshot else []

    @property
    def summary(self) -> FeeSummary:
        return self.snapshot.summary if self.snapshot else FeeSummary()

    async def start(self) -> None:
        await self.refresh()
        await self.load_payment_modes()

    async def refresh(self, show_loader: bool = True) -> bool:
        """Replace the snapshot with a fresh server read. On failure the previous snapshot stays."""
        if show_loader and self.loading:
            return False
        if show_loader:
            self.loading = True
        try:
            snapshot = await self.client.get_summary()
        except LedgerError as e:
            logger.error("Fee summary refresh failed: %s", e)
            return False
        finally:
            if show_loader:
                self.loading = False
        if self._closed:
            logger.debug("Discarding fee summary received after close")
            return False
        self.snapshot = snapshot
        return True

    async def load_payment_modes(self) -> bool:
        try:
            modes = await self.client.get_payment_modes()
        except LedgerError as e:
            logger.error("Loading payment modes failed: %s", e)
            return False
        if self._closed:
            return False
        self.payment_modes = modes
        return True

    def close(self) -> None:
        """Stop accepting results; anything still in flight is dropped when it lands."""
        self._closed = True

    # --- View state ---
    def set_tab(self, tab: FeeBucket) -> None:
        self.active_tab = FeeBucket(tab)

    def select_tab_from_route(self, initial_tab: Optional[str]) -> FeeBucket:
        self.active_tab = _ROUTE_TABS.get(initial_tab or "", FeeBucket.ALL)
        return self.active_tab

    def set_search(self, term: str) -> None:
        self.search = term or ""

    @property
    def visible_fees(self) -> List[FeeRecord]:
        return filter_fees(self.fees, self.active_tab, self.search)

    # --- Derived aggregates; recomputed on every access ---
    @property
    def paid_count(self) -> int:
        return sum(1 for fee in self.fees if classify(fee) == FeeBucket.PAID)

    @property
    def unpaid_count(self) -> int:
        return sum(1 for fee in self.fees if classify(fee) == FeeBucket.UNPAID)

    @property
    def partial_count(self) -> int:
        return sum(1 for fee in self.fees if classify(fee) == FeeBucket.PARTIAL)

    @property
    def counts(self) -> Dict[FeeBucket, int]:
        return {
            FeeBucket.ALL: len(self.fees),
            FeeBucket.UNPAID: self.unpaid_count,
            FeeBucket.PARTIAL: self.partial_count,
            FeeBucket.PAID: self.paid_count,
        }

    @property
    def total_amount(self) -> Decimal:
        return self.summary.total_paid + self.summary.total_pending

    @property
    def collection_pct(self) -> int:
        total = self.total_amount
        if total <= 0:
            return 0
        return int((self.summary.total_paid / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    # --- Collection ---
    def open_collection(self, fee: FeeRecord) -> CollectionDraft:
        default_mode = self.payment_modes[0].id if self.payment_modes else 1
        self.draft = CollectionDraft(
            fee=fee,
            amount=format_amount(fee.balance),
            payment_mode_id=default_mode,
        )
        return self.draft

    def close_collection(self) -> None:
        self.draft = None

    @property
    def selected_fee(self) -> Optional[FeeRecord]:
        return self.draft.fee if self.draft else None

    def build_collection_request(
        self,
        fee: FeeRecord,
        amount: Decimal,
        payment_mode_id: int,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = "",
    ) -> CollectionRequest:
        today = self._today()
        due_date = fee.due_date
        if due_date is None:
            # TODO: decide with the ledger owners whether a missing due date should block collection
            logger.warning(
                "Fee for student %s (%s) has no due date; sending today's date", fee.student_id, fee.fee_month
            )
            due_date = today
        return CollectionRequest(
            student_id=fee.student_id,
            hostel_id=self.session.hostel_id,
            amount=amount,
            payment_date=today,
            due_date=due_date,
            payment_mode_id=payment_mode_id,
            transaction_id=transaction_id or None,
            notes=notes or "",
            fee_month=fee.fee_month,
        )

    async def collect_payment(
        self,
        fee: FeeRecord,
        amount_input,
        payment_mode_id: int,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = "",
    ) -> CollectionOutcome:
        if self.pay_loading:
            return CollectionOutcome(kind=OutcomeKind.BUSY, message="A payment is already being recorded")

        if self.draft is not None and self.draft.fee == fee:
            self.draft = self.draft.model_copy(
                update={
                    "amount": "" if amount_input is None else str(amount_input),
                    "payment_mode_id": payment_mode_id,
                    "transaction_id": transaction_id or "",
                    "notes": notes or "",
                }
            )

        try:
            amount = parse_amount(amount_input)
        except AmountValidationError as e:
            self.notifier.alert(INVALID_AMOUNT_TITLE, str(e))
            return CollectionOutcome(kind=OutcomeKind.VALIDATION, message=str(e))

        try:
            request = self.build_collection_request(fee, amount, payment_mode_id, transaction_id, notes)
        except ValidationError as e:
            message = e.errors()[0].get("msg", PAYMENT_FAILED_MESSAGE)
            self.notifier.alert("Error", message)
            return CollectionOutcome(kind=OutcomeKind.VALIDATION, message=message)
        key_id = (fee.student_id, fee.fee_month)
        idempotency_key = self._idempotency_keys.setdefault(key_id, uuid.uuid4().hex)

        self.pay_loading = True
        try:
            result = await self.client.record_payment(request, idempotency_key=idempotency_key)
        except LedgerServerError as e:
            message = e.message or PAYMENT_FAILED_MESSAGE
            self.notifier.alert("Error", message)
            return CollectionOutcome(kind=OutcomeKind.SERVER, message=message)
        except LedgerError as e:
            logger.error("Recording payment for student %s failed: %s", fee.student_id, e)
            self.notifier.alert("Error", PAYMENT_FAILED_MESSAGE)
            return CollectionOutcome(kind=OutcomeKind.TRANSPORT, message=PAYMENT_FAILED_MESSAGE)
        else:
            self._idempotency_keys.pop(key_id, None)
            # Balances come back from the ledger, never from local arithmetic
            await self.refresh(show_loader=False)
            self.notifier.success(PAYMENT_RECORDED_MESSAGE)
            self.close_collection()
            return CollectionOutcome(kind=OutcomeKind.SUCCESS, message=PAYMENT_RECORDED_MESSAGE, result=result)
        finally:
            self.pay_loading = False
