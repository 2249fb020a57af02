"""Response envelope and money type shared by every route."""

from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, PlainSerializer

T = TypeVar("T")

# Decimal internally, JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiResponse(BaseModel, Generic[T]):
    """{success, data, error} envelope used by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


def ok(data: T) -> "ApiResponse[T]":
    return ApiResponse(success=True, data=data)
