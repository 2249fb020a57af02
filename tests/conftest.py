import os

# Settings are read at import time; point them at an in-memory database before importing the app.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import AsyncGenerator, Dict  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from mhostel.auth.models import User  # noqa: E402
from mhostel.auth.security import create_access_token, hash_password  # noqa: E402
from mhostel.core.enums import FeeStatus, StaffRole, StudentStatus  # noqa: E402
from mhostel.core.models import Hostel, MonthlyFee, PaymentMode, Room, Student  # noqa: E402
from mhostel.db.session import Base, get_db  # noqa: E402
from mhostel.main import app  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite://"
OWNER_PASSWORD = "StrongPass123"
FAR_DUE_DATE = date(2099, 1, 5)


@pytest.fixture()
async def engine():
    """Fresh in-memory SQLite database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(
        subject={"sub": str(user.user_id), "hostel_id": user.hostel_id, "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


async def add_fee(
    db: AsyncSession,
    student: Student,
    fee_month: str,
    amount: str,
    balance: str,
    fee_status: FeeStatus,
    due_date=FAR_DUE_DATE,
) -> MonthlyFee:
    fee = MonthlyFee(
        hostel_id=student.hostel_id,
        student_id=student.student_id,
        fee_month=fee_month,
        amount=Decimal(amount),
        balance=Decimal(balance),
        fee_status=fee_status.value,
        due_date=due_date,
    )
    db.add(fee)
    await db.flush()
    return fee


@pytest.fixture()
async def ledger(db_session: AsyncSession) -> SimpleNamespace:
    """
    Sunrise Hostel with three active students and one inactive, plus a second hostel.

    Fees:
      Jane Cooper   2026-02  5000 / 5000  Pending
      Arjun Mehta   2026-02  5000 / 2000  Partially Paid
      Priya Nair    2026-01  4500 / 0     Fully Paid
      Other hostel  2026-02  3000 / 3000  Pending
    """
    db = db_session
    hostel = Hostel(hostel_name="Sunrise Hostel")
    other_hostel = Hostel(hostel_name="Other Hostel")
    db.add_all([hostel, other_hostel])
    await db.flush()

    room_a = Room(hostel_id=hostel.hostel_id, room_number="101", monthly_rent=Decimal("5000"))
    room_b = Room(hostel_id=hostel.hostel_id, room_number="102", monthly_rent=Decimal("6500"))
    other_room = Room(hostel_id=other_hostel.hostel_id, room_number="1", monthly_rent=Decimal("3000"))
    db.add_all([room_a, room_b, other_room])
    await db.flush()

    cash = PaymentMode(payment_mode_name="Cash", is_active=True)
    upi = PaymentMode(payment_mode_name="UPI", is_active=True)
    cheque = PaymentMode(payment_mode_name="Cheque", is_active=False)
    db.add_all([cash, upi, cheque])

    jane = Student(hostel_id=hostel.hostel_id, room_id=room_a.room_id, first_name="Jane", last_name="Cooper", phone="9000000001")
    arjun = Student(hostel_id=hostel.hostel_id, room_id=room_a.room_id, first_name="Arjun", last_name="Mehta", phone="9000000002")
    priya = Student(
        hostel_id=hostel.hostel_id, room_id=room_b.room_id, first_name="Priya", last_name="Nair",
        phone="9000000003", monthly_fee=Decimal("4500"),
    )
    ravi = Student(
        hostel_id=hostel.hostel_id, room_id=room_b.room_id, first_name="Ravi", last_name="Kumar",
        phone="9000000004", status=StudentStatus.INACTIVE.value,
    )
    outsider = Student(hostel_id=other_hostel.hostel_id, room_id=other_room.room_id, first_name="Olga", last_name="Other", phone="9000000005")
    db.add_all([jane, arjun, priya, ravi, outsider])
    await db.flush()

    owner = User(
        hostel_id=hostel.hostel_id, full_name="Sunita Owner", email="owner@sunrise.example.com",
        password_hash=hash_password(OWNER_PASSWORD), role=StaffRole.OWNER.value,
    )
    warden = User(
        hostel_id=hostel.hostel_id, full_name="Walter Warden", email="warden@sunrise.example.com",
        password_hash=hash_password(OWNER_PASSWORD), role=StaffRole.WARDEN.value,
    )
    db.add_all([owner, warden])
    await db.flush()

    jane_fee = await add_fee(db, jane, "2026-02", "5000", "5000", FeeStatus.PENDING)
    arjun_fee = await add_fee(db, arjun, "2026-02", "5000", "2000", FeeStatus.PARTIALLY_PAID)
    priya_fee = await add_fee(db, priya, "2026-01", "4500", "0", FeeStatus.FULLY_PAID)
    outsider_fee = await add_fee(db, outsider, "2026-02", "3000", "3000", FeeStatus.PENDING)
    await db.commit()

    return SimpleNamespace(
        hostel=hostel,
        other_hostel=other_hostel,
        cash=cash,
        upi=upi,
        cheque=cheque,
        jane=jane,
        arjun=arjun,
        priya=priya,
        ravi=ravi,
        outsider=outsider,
        owner=owner,
        warden=warden,
        jane_fee=jane_fee,
        arjun_fee=arjun_fee,
        priya_fee=priya_fee,
        outsider_fee=outsider_fee,
        owner_headers=auth_headers(owner),
        warden_headers=auth_headers(warden),
    )
