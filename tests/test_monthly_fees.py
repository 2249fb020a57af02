from datetime import date
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import add_fee
from mhostel.core.enums import FeeStatus
from mhostel.core.models import FeeAuditLog, FeePayment, MonthlyFee


def payment_body(ledger: SimpleNamespace, student=None, **overrides) -> dict:
    student = student or ledger.jane
    body = {
        "student_id": student.student_id,
        "hostel_id": student.hostel_id,
        "amount": 2000,
        "payment_date": "2026-02-10",
        "due_date": "2026-02-05",
        "payment_mode_id": ledger.cash.payment_mode_id,
        "transaction_id": None,
        "notes": "",
        "fee_month": "2026-02",
    }
    body.update(overrides)
    return body


# --- Summary ---
@pytest.mark.asyncio
async def test_summary_returns_fees_and_totals(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get("/api/monthly-fees/summary", headers=ledger.owner_headers)
    assert response.status_code == 200
    body = response.json()

    assert body["success"] is True
    assert body["error"] is None
    assert body["data"]["summary"] == {"total_paid": 7500.0, "total_pending": 7000.0}

    fees = body["data"]["fees"]
    assert [(f["first_name"], f["fee_month"]) for f in fees] == [
        ("Arjun", "2026-02"),
        ("Jane", "2026-02"),
        ("Priya", "2026-01"),
    ]
    jane = fees[1]
    assert jane["student_id"] == ledger.jane.student_id
    assert jane["hostel_id"] == ledger.hostel.hostel_id
    assert jane["amount"] == 5000.0
    assert jane["balance"] == 5000.0
    assert jane["fee_status"] == "Pending"
    assert jane["due_date"] == "2099-01-05"
    assert jane["last_name"] == "Cooper"
    assert jane["room_number"] == "101"


@pytest.mark.asyncio
async def test_summary_is_scoped_to_callers_hostel(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get("/api/monthly-fees/summary", headers=ledger.owner_headers)
    student_ids = {f["student_id"] for f in response.json()["data"]["fees"]}
    assert ledger.outsider.student_id not in student_ids


@pytest.mark.asyncio
async def test_summary_filters_by_month(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get(
        "/api/monthly-fees/summary", params={"fee_month": "2026-01"}, headers=ledger.owner_headers
    )
    data = response.json()["data"]
    assert [f["first_name"] for f in data["fees"]] == ["Priya"]
    assert data["summary"] == {"total_paid": 4500.0, "total_pending": 0.0}


@pytest.mark.asyncio
async def test_summary_rejects_malformed_month(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get(
        "/api/monthly-fees/summary", params={"fee_month": "2026-13"}, headers=ledger.owner_headers
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_summary_reports_past_due_pending_as_overdue(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    stale = await add_fee(
        db_session, ledger.ravi, "2020-01", "6500", "6500", FeeStatus.PENDING, due_date=date(2020, 1, 5)
    )
    await db_session.commit()

    response = await client.get("/api/monthly-fees/summary", headers=ledger.owner_headers)
    reported = {f["fee_id"]: f["fee_status"] for f in response.json()["data"]["fees"]}
    assert reported[stale.fee_id] == "Overdue"
    assert reported[ledger.jane_fee.fee_id] == "Pending"

    # Read-only: the stored row is untouched
    await db_session.refresh(stale)
    assert stale.fee_status == "Pending"


@pytest.mark.asyncio
async def test_summary_requires_token(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get("/api/monthly-fees/summary")
    assert response.status_code == 401
    assert response.json() == {"success": False, "data": None, "error": "Not authenticated"}


@pytest.mark.asyncio
async def test_summary_rejects_bad_token(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get(
        "/api/monthly-fees/summary", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Could not validate credentials"


# --- Payment modes ---
@pytest.mark.asyncio
async def test_payment_modes_lists_active_modes(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.get("/api/monthly-fees/payment-modes", headers=ledger.warden_headers)
    assert response.status_code == 200
    assert response.json()["data"] == [
        {"id": ledger.cash.payment_mode_id, "name": "Cash"},
        {"id": ledger.upi.payment_mode_id, "name": "UPI"},
    ]


# --- Record payment ---
@pytest.mark.asyncio
async def test_partial_then_full_payment(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment", json=payment_body(ledger), headers=ledger.owner_headers
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["fee_id"] == ledger.jane_fee.fee_id
    assert data["amount"] == 2000.0
    assert data["balance"] == 3000.0
    assert data["fee_status"] == "Partially Paid"
    assert data["duplicate"] is False

    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, amount=3000, payment_mode_id=ledger.upi.payment_mode_id, transaction_id="UPI-778"),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["balance"] == 0.0
    assert data["fee_status"] == "Fully Paid"

    fee = await db_session.get(MonthlyFee, ledger.jane_fee.fee_id)
    await db_session.refresh(fee)
    assert fee.fee_status == "Fully Paid"
    assert fee.balance == 0

    payments = (
        await db_session.execute(select(FeePayment).where(FeePayment.fee_id == fee.fee_id).order_by(FeePayment.payment_id))
    ).scalars().all()
    assert [p.transaction_id for p in payments] == [None, "UPI-778"]
    assert all(p.collected_by == ledger.owner.user_id for p in payments)

    audit_rows = (await db_session.execute(select(func.count(FeeAuditLog.id)))).scalar()
    assert audit_rows == 4


@pytest.mark.asyncio
async def test_payment_on_partial_fee_settles_it(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.arjun, amount=2000),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 201
    assert response.json()["data"]["fee_status"] == "Fully Paid"


@pytest.mark.asyncio
async def test_overpayment_is_rejected(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.arjun, amount=2500),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "data": None,
        "error": "Payment amount cannot exceed remaining balance",
    }
    count = (await db_session.execute(select(func.count(FeePayment.payment_id)))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_payment_on_fully_paid_fee_is_rejected(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.priya, amount=100, fee_month="2026-01"),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Fee is already fully paid"


@pytest.mark.asyncio
async def test_payment_for_unbilled_month_is_not_found(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, fee_month="2026-03"),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "Fee record not found for this month"


@pytest.mark.asyncio
async def test_payment_for_other_hostel_is_forbidden(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.outsider),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 403
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_inactive_payment_mode_is_rejected(client: AsyncClient, ledger: SimpleNamespace) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, payment_mode_id=ledger.cheque.payment_mode_id),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid payment mode"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5])
async def test_non_positive_amount_fails_validation(
    client: AsyncClient, ledger: SimpleNamespace, amount: int
) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, amount=amount),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("amount:")


@pytest.mark.asyncio
async def test_sub_cent_amount_is_rejected(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    response = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, amount=0.001),
        headers=ledger.owner_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Payment amount must be positive"

    payments = (await db_session.execute(select(func.count(FeePayment.payment_id)))).scalar()
    audit_rows = (await db_session.execute(select(func.count(FeeAuditLog.id)))).scalar()
    assert payments == 0
    assert audit_rows == 0


@pytest.mark.asyncio
async def test_zero_payment_row_violates_check_constraint(
    db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    db_session.add(
        FeePayment(
            fee_id=ledger.jane_fee.fee_id,
            hostel_id=ledger.hostel.hostel_id,
            student_id=ledger.jane.student_id,
            amount=0,
            payment_date=date(2026, 2, 10),
            payment_mode_id=ledger.cash.payment_mode_id,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_duplicate_transaction_id_conflicts(client: AsyncClient, ledger: SimpleNamespace) -> None:
    first = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, amount=1000, transaction_id="UPI-1"),
        headers=ledger.owner_headers,
    )
    assert first.status_code == 201

    second = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.arjun, amount=1000, transaction_id="UPI-1"),
        headers=ledger.owner_headers,
    )
    assert second.status_code == 409
    assert second.json()["error"] == "Duplicate transaction ID"


@pytest.mark.asyncio
async def test_replayed_idempotency_key_records_once(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    headers = {**ledger.owner_headers, "Idempotency-Key": "c0ffee00c0ffee00"}

    first = await client.post("/api/monthly-fees/record-payment", json=payment_body(ledger), headers=headers)
    assert first.status_code == 201

    replay = await client.post("/api/monthly-fees/record-payment", json=payment_body(ledger), headers=headers)
    assert replay.status_code == 200
    data = replay.json()["data"]
    assert data["duplicate"] is True
    assert data["payment_id"] == first.json()["data"]["payment_id"]
    assert data["balance"] == 3000.0

    count = (await db_session.execute(select(func.count(FeePayment.payment_id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [{"amount": 2500}, {"fee_month": "2026-01"}, {"student": "arjun"}],
)
async def test_idempotency_key_reused_for_different_payment_conflicts(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace, changes: dict
) -> None:
    headers = {**ledger.owner_headers, "Idempotency-Key": "feedface0001"}
    first = await client.post("/api/monthly-fees/record-payment", json=payment_body(ledger), headers=headers)
    assert first.status_code == 201

    changes = dict(changes)
    student = getattr(ledger, changes.pop("student")) if "student" in changes else None
    replay = await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=student, **changes),
        headers=headers,
    )
    assert replay.status_code == 409
    assert replay.json()["error"] == "Idempotency key already used for a different payment"

    count = (await db_session.execute(select(func.count(FeePayment.payment_id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_warden_can_collect_but_not_generate(client: AsyncClient, ledger: SimpleNamespace) -> None:
    collected = await client.post(
        "/api/monthly-fees/record-payment", json=payment_body(ledger), headers=ledger.warden_headers
    )
    assert collected.status_code == 201

    generated = await client.post(
        "/api/monthly-fees/generate", json={"fee_month": "2026-03"}, headers=ledger.warden_headers
    )
    assert generated.status_code == 403
    assert generated.json()["error"] == "Insufficient permissions"


# --- Billing cycle ---
@pytest.mark.asyncio
async def test_generate_bills_active_students_once(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    response = await client.post(
        "/api/monthly-fees/generate", json={"fee_month": "2026-03"}, headers=ledger.owner_headers
    )
    assert response.status_code == 201
    assert response.json()["data"] == {"fee_month": "2026-03", "created": 3, "skipped": 0}

    rows = (
        await db_session.execute(
            select(MonthlyFee).where(MonthlyFee.fee_month == "2026-03").order_by(MonthlyFee.student_id)
        )
    ).scalars().all()
    assert {r.student_id: r.amount for r in rows} == {
        ledger.jane.student_id: 5000,
        ledger.arjun.student_id: 5000,
        ledger.priya.student_id: 4500,
    }
    assert all(r.fee_status == "Pending" and r.balance == r.amount for r in rows)
    assert all(r.due_date == date(2026, 3, 5) for r in rows)

    again = await client.post(
        "/api/monthly-fees/generate", json={"fee_month": "2026-03"}, headers=ledger.owner_headers
    )
    assert again.json()["data"] == {"fee_month": "2026-03", "created": 0, "skipped": 3}


@pytest.mark.asyncio
async def test_generate_uses_explicit_due_date(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace
) -> None:
    response = await client.post(
        "/api/monthly-fees/generate",
        json={"fee_month": "2026-04", "due_date": "2026-04-10"},
        headers=ledger.owner_headers,
    )
    assert response.status_code == 201
    due_dates = (
        await db_session.execute(select(MonthlyFee.due_date).where(MonthlyFee.fee_month == "2026-04"))
    ).scalars().all()
    assert set(due_dates) == {date(2026, 4, 10)}


@pytest.mark.asyncio
async def test_generate_conflict_at_commit_returns_409(
    client: AsyncClient, db_session: AsyncSession, ledger: SimpleNamespace, monkeypatch
) -> None:
    async def commit_after_concurrent_run() -> None:
        raise IntegrityError("INSERT INTO monthly_fees", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(db_session, "commit", commit_after_concurrent_run)
    response = await client.post(
        "/api/monthly-fees/generate", json={"fee_month": "2026-03"}, headers=ledger.owner_headers
    )
    monkeypatch.undo()

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "data": None,
        "error": "Fees for this month were generated concurrently; retry",
    }
    rows = (
        await db_session.execute(select(func.count(MonthlyFee.fee_id)).where(MonthlyFee.fee_month == "2026-03"))
    ).scalar()
    assert rows == 0


# --- History ---
@pytest.mark.asyncio
async def test_payment_history_lists_recorded_payments(client: AsyncClient, ledger: SimpleNamespace) -> None:
    await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, amount=1500, notes="first instalment"),
        headers=ledger.owner_headers,
    )
    await client.post(
        "/api/monthly-fees/record-payment",
        json=payment_body(ledger, student=ledger.arjun, amount=500, payment_mode_id=ledger.upi.payment_mode_id),
        headers=ledger.owner_headers,
    )

    response = await client.get(
        "/api/monthly-fees/payments",
        params={"student_id": ledger.jane.student_id},
        headers=ledger.owner_headers,
    )
    assert response.status_code == 200
    history = response.json()["data"]
    assert len(history) == 1
    assert history[0]["amount"] == 1500.0
    assert history[0]["fee_month"] == "2026-02"
    assert history[0]["payment_mode_name"] == "Cash"
    assert history[0]["notes"] == "first instalment"

    everything = await client.get("/api/monthly-fees/payments", headers=ledger.owner_headers)
    assert len(everything.json()["data"]) == 2
