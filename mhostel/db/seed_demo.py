"""
Seed script for a demo hostel.

Creates (idempotently):
- one hostel with a few rooms
- the payment modes offered at the collection counter
- an OWNER account (SEED_OWNER_EMAIL / SEED_OWNER_PASSWORD or the defaults below)
- a handful of active students

Run after init_db:
  python -m mhostel.db.seed_demo
"""
import asyncio
import os
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mhostel.auth.models import User
from mhostel.auth.security import hash_password
from mhostel.core.enums import StaffRole, StudentStatus
from mhostel.core.models import Hostel, PaymentMode, Room, Student
from mhostel.db.session import AsyncSessionLocal

DEMO_HOSTEL_NAME = "Demo Hostel"
DEFAULT_OWNER_EMAIL = "owner@demohostel.example.com"
DEFAULT_OWNER_PASSWORD = "ChangeMe123"

PAYMENT_MODES: List[str] = ["Cash", "UPI", "Card", "Bank Transfer"]

# (room_number, monthly_rent)
ROOMS: List[Tuple[str, Decimal]] = [
    ("101", Decimal("5000")),
    ("102", Decimal("5000")),
    ("201", Decimal("6500")),
]

# (first_name, last_name, phone, room_number)
STUDENTS: List[Tuple[str, str, str, str]] = [
    ("Jane", "Cooper", "9000000001", "101"),
    ("Arjun", "Mehta", "9000000002", "101"),
    ("Priya", "Nair", "9000000003", "102"),
    ("Rahul", "Verma", "9000000004", "201"),
]


async def seed_demo(db: AsyncSession) -> None:
    # 1. Payment modes
    existing_modes = set((await db.execute(select(PaymentMode.payment_mode_name))).scalars().all())
    for name in PAYMENT_MODES:
        if name not in existing_modes:
            db.add(PaymentMode(payment_mode_name=name, is_active=True))
            print("Created payment mode:", name)

    # 2. Hostel
    hostel = (
        await db.execute(select(Hostel).where(Hostel.hostel_name == DEMO_HOSTEL_NAME))
    ).scalar_one_or_none()
    if not hostel:
        hostel = Hostel(hostel_name=DEMO_HOSTEL_NAME, address="")
        db.add(hostel)
        await db.flush()
        print("Created hostel:", DEMO_HOSTEL_NAME)

    # 3. Rooms
    rooms = {
        r.room_number: r
        for r in (await db.execute(select(Room).where(Room.hostel_id == hostel.hostel_id))).scalars().all()
    }
    for number, rent in ROOMS:
        if number not in rooms:
            rooms[number] = Room(hostel_id=hostel.hostel_id, room_number=number, monthly_rent=rent)
            db.add(rooms[number])
    await db.flush()

    # 4. Owner account
    email = (os.getenv("SEED_OWNER_EMAIL") or DEFAULT_OWNER_EMAIL).lower()
    password = os.getenv("SEED_OWNER_PASSWORD") or DEFAULT_OWNER_PASSWORD
    owner = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if not owner:
        db.add(
            User(
                hostel_id=hostel.hostel_id,
                full_name="Hostel Owner",
                email=email,
                password_hash=hash_password(password),
                role=StaffRole.OWNER.value,
                status="ACTIVE",
            )
        )
        print("Created OWNER user:", email)

    # 5. Students
    phones = set(
        (await db.execute(select(Student.phone).where(Student.hostel_id == hostel.hostel_id))).scalars().all()
    )
    for first_name, last_name, phone, room_number in STUDENTS:
        if phone in phones:
            continue
        db.add(
            Student(
                hostel_id=hostel.hostel_id,
                room_id=rooms[room_number].room_id,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                status=StudentStatus.ACTIVE.value,
            )
        )

    await db.commit()
    print("Demo seed done.")


async def main() -> None:
    async with AsyncSessionLocal() as db:
        try:
            await seed_demo(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise


if __name__ == "__main__":
    asyncio.run(main())
