"""Monthly fees router: ledger snapshot, payment modes, payment recording, billing cycles, history."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from mhostel.auth.dependencies import get_current_user
from mhostel.auth.rbac import check_permission
from mhostel.auth.schemas import CurrentUser
from mhostel.core.config import settings
from mhostel.core.exceptions import ServiceError
from mhostel.core.schemas import ApiResponse, ok
from mhostel.db.session import get_db

from .schemas import (
    FEE_MONTH_PATTERN,
    CollectionRequest,
    FeeSnapshot,
    GenerateFeesRequest,
    GenerateFeesResult,
    PaymentHistoryItem,
    PaymentModeRef,
    RecordPaymentResult,
)
from . import service

router = APIRouter(prefix="/api/monthly-fees", tags=["monthly-fees"])


@router.get(
    "/summary",
    response_model=ApiResponse[FeeSnapshot],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_summary(
    fee_month: Optional[str] = Query(None, pattern=FEE_MONTH_PATTERN, description="Restrict to one billing month"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[FeeSnapshot]:
    return ok(await service.get_summary(db, current_user.hostel_id, fee_month=fee_month))


@router.get(
    "/payment-modes",
    response_model=ApiResponse[List[PaymentModeRef]],
    dependencies=[Depends(get_current_user)],
)
async def get_payment_modes(
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[PaymentModeRef]]:
    return ok(await service.list_payment_modes(db))


@router.post(
    "/record-payment",
    response_model=ApiResponse[RecordPaymentResult],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "collect"))],
)
async def record_payment(
    payload: CollectionRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=64),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[RecordPaymentResult]:
    try:
        result, created = await service.record_payment(
            db,
            current_user.hostel_id,
            payload,
            collected_by=current_user.id,
            idempotency_key=idempotency_key,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not created:
        response.status_code = status.HTTP_200_OK
    return ok(result)


@router.post(
    "/generate",
    response_model=ApiResponse[GenerateFeesResult],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def generate_monthly_fees(
    payload: GenerateFeesRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[GenerateFeesResult]:
    try:
        return ok(
            await service.generate_monthly_fees(
                db, current_user.hostel_id, payload, due_day=settings.fee_due_day
            )
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/payments",
    response_model=ApiResponse[List[PaymentHistoryItem]],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_payment_history(
    student_id: Optional[int] = Query(None),
    fee_month: Optional[str] = Query(None, pattern=FEE_MONTH_PATTERN),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[List[PaymentHistoryItem]]:
    return ok(
        await service.get_payment_history(
            db, current_user.hostel_id, student_id=student_id, fee_month=fee_month
        )
    )
