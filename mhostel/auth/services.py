import logging
from datetime import datetime, timezone

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mhostel.auth.models import User
from mhostel.auth.schemas import LoginRequest, LoginResponse, UserInfo
from mhostel.auth.security import create_access_token, verify_password
from mhostel.core.exceptions import ServiceError

logger = logging.getLogger(__name__)


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    email = payload.email.strip().lower()
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt for %s", email)
        raise ServiceError("Invalid email or password", status.HTTP_401_UNAUTHORIZED)
    if user.status != "ACTIVE":
        raise ServiceError("User is inactive", status.HTTP_403_FORBIDDEN)

    issued_at = datetime.now(timezone.utc)
    access_token = create_access_token(
        subject={
            "sub": str(user.user_id),
            "hostel_id": user.hostel_id,
            "role": user.role,
            "iat": int(issued_at.timestamp()),
        }
    )
    return LoginResponse(
        access_token=access_token,
        user=UserInfo(
            id=user.user_id,
            name=user.full_name,
            email=user.email,
            role=user.role,
            hostel_id=user.hostel_id,
        ),
        issued_at=issued_at,
    )
