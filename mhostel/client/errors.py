from typing import Optional


class LedgerError(Exception):
    """Base exception for failures talking to the fee ledger."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message


class LedgerTransportError(LedgerError):
    """No usable response: connection refused, DNS failure, timeout."""


class LedgerServerError(LedgerError):
    """The ledger answered with {success: false} or an HTTP error. message is its error text, if any."""

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LedgerAuthError(LedgerServerError):
    """The access token was rejected (HTTP 401)."""


class AmountValidationError(ValueError):
    """Collection amount is not a finite positive number. Raised before any network call."""
