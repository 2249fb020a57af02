"""Monthly fees service: ledger snapshot, payment recording, billing cycles, history. Financial logic with audit."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mhostel.core.enums import FeeStatus, StudentStatus
from mhostel.core.exceptions import ServiceError
from mhostel.core.models import FeeAuditLog, FeePayment, MonthlyFee, PaymentMode, Room, Student

from .schemas import (
    CollectionRequest,
    FeeRecord,
    FeeSnapshot,
    FeeSummary,
    GenerateFeesRequest,
    GenerateFeesResult,
    PaymentHistoryItem,
    PaymentModeRef,
    RecordPaymentResult,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _money(val) -> Decimal:
    return _to_decimal(val).quantize(CENT)


def derive_fee_status(amount: Decimal, balance: Decimal, due_date: Optional[date], today: date) -> FeeStatus:
    """Status implied by a balance. Unpaid fees are Overdue once their due date has passed."""
    if balance <= 0:
        return FeeStatus.FULLY_PAID
    if balance < amount:
        return FeeStatus.PARTIALLY_PAID
    if due_date is not None and due_date < today:
        return FeeStatus.OVERDUE
    return FeeStatus.PENDING


def _reported_status(fee: MonthlyFee, today: date) -> str:
    # Read side only: a stored Pending row past its due date is reported as Overdue
    if fee.fee_status == FeeStatus.PENDING.value and fee.due_date is not None and fee.due_date < today:
        return FeeStatus.OVERDUE.value
    return fee.fee_status


# --- Audit helper ---
async def _log_fee_audit(
    db: AsyncSession,
    hostel_id: int,
    reference_table: str,
    reference_id: int,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[int],
) -> None:
    db.add(
        FeeAuditLog(
            hostel_id=hostel_id,
            reference_table=reference_table,
            reference_id=reference_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
        )
    )


# --- Snapshot ---
async def get_summary(
    db: AsyncSession,
    hostel_id: int,
    fee_month: Optional[str] = None,
    today: Optional[date] = None,
) -> FeeSnapshot:
    today = today or date.today()
    stmt = (
        select(MonthlyFee, Student.first_name, Student.last_name, Room.room_number)
        .join(Student, Student.student_id == MonthlyFee.student_id)
        .outerjoin(Room, Room.room_id == Student.room_id)
        .where(MonthlyFee.hostel_id == hostel_id)
    )
    if fee_month:
        stmt = stmt.where(MonthlyFee.fee_month == fee_month)
    stmt = stmt.order_by(
        MonthlyFee.fee_month.desc(),
        Student.first_name,
        Student.last_name,
        MonthlyFee.fee_id,
    )
    rows = (await db.execute(stmt)).all()

    fees: List[FeeRecord] = []
    total_paid = Decimal("0")
    total_pending = Decimal("0")
    for fee, first_name, last_name, room_number in rows:
        amount = _money(fee.amount)
        balance = _money(fee.balance)
        total_paid += amount - balance
        total_pending += balance
        fees.append(
            FeeRecord(
                fee_id=fee.fee_id,
                student_id=fee.student_id,
                hostel_id=fee.hostel_id,
                fee_month=fee.fee_month,
                amount=amount,
                balance=balance,
                fee_status=_reported_status(fee, today),
                due_date=fee.due_date,
                first_name=first_name,
                last_name=last_name,
                room_number=room_number,
            )
        )
    return FeeSnapshot(
        summary=FeeSummary(total_paid=total_paid, total_pending=total_pending),
        fees=fees,
    )


async def list_payment_modes(db: AsyncSession) -> List[PaymentModeRef]:
    stmt = (
        select(PaymentMode)
        .where(PaymentMode.is_active.is_(True))
        .order_by(PaymentMode.payment_mode_id)
    )
    result = await db.execute(stmt)
    return [
        PaymentModeRef(id=m.payment_mode_id, name=m.payment_mode_name)
        for m in result.scalars().all()
    ]


# --- Payment ---
def _payment_result(payment: FeePayment, fee: MonthlyFee, duplicate: bool = False) -> RecordPaymentResult:
    return RecordPaymentResult(
        payment_id=payment.payment_id,
        fee_id=fee.fee_id,
        amount=_money(payment.amount),
        balance=_money(fee.balance),
        fee_status=fee.fee_status,
        duplicate=duplicate,
    )


async def record_payment(
    db: AsyncSession,
    hostel_id: int,
    payload: CollectionRequest,
    collected_by: Optional[int],
    idempotency_key: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[RecordPaymentResult, bool]:
    """Record one payment. Returns (result, created); created is False for a replayed idempotency key."""
    if payload.hostel_id != hostel_id:
        raise ServiceError("Cannot record payments for another hostel", status.HTTP_403_FORBIDDEN)

    if idempotency_key:
        existing = (
            await db.execute(select(FeePayment).where(FeePayment.idempotency_key == idempotency_key))
        ).scalar_one_or_none()
        if existing is not None:
            if existing.hostel_id != hostel_id:
                raise ServiceError("Idempotency key already used", status.HTTP_409_CONFLICT)
            fee = await db.get(MonthlyFee, existing.fee_id)
            if (
                existing.student_id != payload.student_id
                or fee.fee_month != payload.fee_month
                or _money(existing.amount) != _money(payload.amount)
            ):
                raise ServiceError("Idempotency key already used for a different payment", status.HTTP_409_CONFLICT)
            logger.info("Replayed payment %s for idempotency key %s", existing.payment_id, idempotency_key)
            return _payment_result(existing, fee, duplicate=True), False

    fee = (
        await db.execute(
            select(MonthlyFee)
            .where(
                MonthlyFee.hostel_id == hostel_id,
                MonthlyFee.student_id == payload.student_id,
                MonthlyFee.fee_month == payload.fee_month,
            )
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not fee:
        raise ServiceError("Fee record not found for this month", status.HTTP_404_NOT_FOUND)

    mode = await db.get(PaymentMode, payload.payment_mode_id)
    if not mode or not mode.is_active:
        raise ServiceError("Invalid payment mode", status.HTTP_400_BAD_REQUEST)

    transaction_id = (payload.transaction_id or "").strip() or None
    if transaction_id:
        clash = (
            await db.execute(
                select(func.count(FeePayment.payment_id)).where(
                    FeePayment.hostel_id == hostel_id,
                    FeePayment.transaction_id == transaction_id,
                )
            )
        ).scalar()
        if clash:
            raise ServiceError("Duplicate transaction ID", status.HTTP_409_CONFLICT)

    amount = _money(payload.amount)
    if amount <= 0:
        raise ServiceError("Payment amount must be positive", status.HTTP_400_BAD_REQUEST)
    fee_amount = _money(fee.amount)
    balance = _money(fee.balance)
    if fee.fee_status == FeeStatus.FULLY_PAID.value or balance <= 0:
        raise ServiceError("Fee is already fully paid", status.HTTP_400_BAD_REQUEST)
    if amount > balance:
        raise ServiceError("Payment amount cannot exceed remaining balance", status.HTTP_400_BAD_REQUEST)

    payment = FeePayment(
        fee_id=fee.fee_id,
        hostel_id=hostel_id,
        student_id=fee.student_id,
        amount=amount,
        payment_date=payload.payment_date,
        payment_mode_id=mode.payment_mode_id,
        transaction_id=transaction_id,
        notes=(payload.notes or "").strip() or None,
        idempotency_key=idempotency_key,
        collected_by=collected_by,
    )
    db.add(payment)
    await db.flush()

    old_status = fee.fee_status
    new_balance = balance - amount
    fee.balance = new_balance
    fee.fee_status = derive_fee_status(fee_amount, new_balance, fee.due_date, today or date.today()).value

    await _log_fee_audit(
        db, hostel_id, "fee_payments", payment.payment_id,
        "CREATE",
        None,
        {
            "amount": str(amount),
            "payment_mode_id": mode.payment_mode_id,
            "fee_id": fee.fee_id,
            "fee_month": fee.fee_month,
            "due_date": payload.due_date.isoformat() if payload.due_date else None,
        },
        collected_by,
    )
    await _log_fee_audit(
        db, hostel_id, "monthly_fees", fee.fee_id,
        "UPDATE",
        {"balance": str(balance), "fee_status": old_status},
        {"balance": str(new_balance), "fee_status": fee.fee_status},
        collected_by,
    )
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Payment conflicts with an existing record", status.HTTP_409_CONFLICT) from e
    await db.refresh(payment)
    await db.refresh(fee)
    logger.info(
        "Recorded payment %s of %s for student %s (%s): %s -> %s",
        payment.payment_id, amount, fee.student_id, fee.fee_month, old_status, fee.fee_status,
    )
    return _payment_result(payment, fee), True


# --- Billing cycle ---
def default_due_date(fee_month: str, due_day: int) -> date:
    year, month = (int(part) for part in fee_month.split("-"))
    return date(year, month, due_day)


async def generate_monthly_fees(
    db: AsyncSession,
    hostel_id: int,
    payload: GenerateFeesRequest,
    due_day: int,
) -> GenerateFeesResult:
    """Create one fee per active student for the month. Existing (student, month) rows are left untouched."""
    due_date = payload.due_date or default_due_date(payload.fee_month, due_day)

    already_billed = set(
        (
            await db.execute(
                select(MonthlyFee.student_id).where(
                    MonthlyFee.hostel_id == hostel_id,
                    MonthlyFee.fee_month == payload.fee_month,
                )
            )
        ).scalars().all()
    )
    rows = (
        await db.execute(
            select(Student, Room.monthly_rent)
            .outerjoin(Room, Room.room_id == Student.room_id)
            .where(
                Student.hostel_id == hostel_id,
                Student.status == StudentStatus.ACTIVE.value,
            )
            .order_by(Student.student_id)
        )
    ).all()

    created = 0
    skipped = 0
    for student, room_rent in rows:
        if student.student_id in already_billed:
            skipped += 1
            continue
        amount = _money(student.monthly_fee if student.monthly_fee is not None else room_rent)
        if amount <= 0:
            logger.warning("Student %s has no monthly fee or room rent; not billed", student.student_id)
            skipped += 1
            continue
        db.add(
            MonthlyFee(
                hostel_id=hostel_id,
                student_id=student.student_id,
                fee_month=payload.fee_month,
                amount=amount,
                balance=amount,
                fee_status=FeeStatus.PENDING.value,
                due_date=due_date,
            )
        )
        created += 1

    try:
        await db.commit()
    except IntegrityError as e:
        # Another run billed some of these students between the read and the commit
        await db.rollback()
        raise ServiceError(
            "Fees for this month were generated concurrently; retry", status.HTTP_409_CONFLICT
        ) from e
    logger.info("Generated %d fees for hostel %s (%s), skipped %d", created, hostel_id, payload.fee_month, skipped)
    return GenerateFeesResult(fee_month=payload.fee_month, created=created, skipped=skipped)


# --- History ---
async def get_payment_history(
    db: AsyncSession,
    hostel_id: int,
    student_id: Optional[int] = None,
    fee_month: Optional[str] = None,
) -> List[PaymentHistoryItem]:
    stmt = (
        select(FeePayment, MonthlyFee.fee_month, PaymentMode.payment_mode_name)
        .join(MonthlyFee, MonthlyFee.fee_id == FeePayment.fee_id)
        .outerjoin(PaymentMode, PaymentMode.payment_mode_id == FeePayment.payment_mode_id)
        .where(FeePayment.hostel_id == hostel_id)
    )
    if student_id is not None:
        stmt = stmt.where(FeePayment.student_id == student_id)
    if fee_month:
        stmt = stmt.where(MonthlyFee.fee_month == fee_month)
    stmt = stmt.order_by(FeePayment.payment_date.desc(), FeePayment.payment_id.desc())
    rows = (await db.execute(stmt)).all()
    return [
        PaymentHistoryItem(
            payment_id=p.payment_id,
            fee_id=p.fee_id,
            student_id=p.student_id,
            fee_month=month,
            amount=_money(p.amount),
            payment_date=p.payment_date,
            payment_mode_id=p.payment_mode_id,
            payment_mode_name=mode_name,
            transaction_id=p.transaction_id,
            notes=p.notes,
        )
        for p, month, mode_name in rows
    ]
