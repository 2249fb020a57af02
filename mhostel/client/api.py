"""HTTP client for the fee ledger's /monthly-fees contract. Unwraps the {success, data, error} envelope."""

import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from mhostel.api.v1.monthly_fees.schemas import (
    CollectionRequest,
    FeeSnapshot,
    PaymentModeRef,
    RecordPaymentResult,
)
from mhostel.client.config import client_settings
from mhostel.client.errors import LedgerAuthError, LedgerServerError, LedgerTransportError
from mhostel.client.session import SessionContext

logger = logging.getLogger(__name__)


def _unwrap(response: httpx.Response) -> Any:
    """Return the envelope's data, or raise with the server's error text verbatim."""
    try:
        body = response.json()
    except ValueError:
        body = None

    error = body.get("error") if isinstance(body, dict) else None
    if response.status_code == 401:
        raise LedgerAuthError(error, response.status_code)
    if response.is_error:
        raise LedgerServerError(error, response.status_code)
    if not isinstance(body, dict) or not body.get("success"):
        raise LedgerServerError(error, response.status_code)
    return body.get("data")


async def _send(http: httpx.AsyncClient, method: str, url: str, **kwargs) -> Any:
    try:
        response = await http.request(method, url, **kwargs)
    except httpx.TransportError as e:
        logger.warning("%s %s failed: %s", method, url, e)
        raise LedgerTransportError(str(e)) from e
    return _unwrap(response)


class LedgerClient:
    """Thin async wrapper over the ledger endpoints used by the reconciler. No retries."""

    def __init__(
        self,
        session: SessionContext,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.session = session
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=session.base_url,
            timeout=timeout if timeout is not None else client_settings.client_timeout_seconds,
        )

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(self, method: str, path: str, headers: Optional[dict] = None, **kwargs) -> Any:
        merged = dict(self.session.auth_headers)
        if headers:
            merged.update(headers)
        return await _send(self._http, method, path, headers=merged, **kwargs)

    async def get_summary(self) -> FeeSnapshot:
        data = await self._request("GET", "/monthly-fees/summary")
        try:
            return FeeSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed fee summary from ledger: %s", e)
            raise LedgerServerError(None) from e

    async def get_payment_modes(self) -> List[PaymentModeRef]:
        data = await self._request("GET", "/monthly-fees/payment-modes")
        try:
            return [PaymentModeRef.model_validate(item) for item in data or []]
        except (ValidationError, TypeError) as e:
            logger.warning("Malformed payment modes from ledger: %s", e)
            raise LedgerServerError(None) from e

    async def record_payment(
        self,
        request: CollectionRequest,
        idempotency_key: Optional[str] = None,
    ) -> Optional[RecordPaymentResult]:
        """Post one collection. A success envelope is success even when its data is missing or partial (None)."""
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._request(
            "POST",
            "/monthly-fees/record-payment",
            headers=headers,
            json=request.model_dump(mode="json"),
        )
        if not data:
            return None
        try:
            return RecordPaymentResult.model_validate(data)
        except ValidationError as e:
            logger.warning("Payment recorded but ledger result was incomplete: %s", e)
            return None


async def login(
    email: str,
    password: str,
    base_url: Optional[str] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> SessionContext:
    """Authenticate a staff member and build the session context the reconciler is constructed with."""
    base_url = base_url or client_settings.api_base_url
    if http is not None:
        data = await _send(http, "POST", "/auth/login", json={"email": email, "password": password})
    else:
        async with httpx.AsyncClient(base_url=base_url, timeout=client_settings.client_timeout_seconds) as owned:
            data = await _send(owned, "POST", "/auth/login", json={"email": email, "password": password})
    user = data["user"]
    return SessionContext(
        hostel_id=user["hostel_id"],
        access_token=data["access_token"],
        base_url=base_url,
        user_id=user["id"],
        role=user["role"],
    )
