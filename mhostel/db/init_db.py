"""
Create every table the ledger needs.

Run once against an empty database:
  python -m mhostel.db.init_db
"""
import asyncio

# Import all models so they register on Base.metadata
from mhostel.auth.models import User  # noqa: F401
from mhostel.core import models  # noqa: F401
from mhostel.db.session import Base, engine


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Tables created or verified.")


if __name__ == "__main__":
    asyncio.run(main())
