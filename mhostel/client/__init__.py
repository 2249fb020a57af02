from mhostel.client.api import LedgerClient, login
from mhostel.client.errors import (
    AmountValidationError,
    LedgerAuthError,
    LedgerError,
    LedgerServerError,
    LedgerTransportError,
)
from mhostel.client.notify import Notifier
from mhostel.client.reconciler import (
    CollectionDraft,
    CollectionOutcome,
    FeeCollectionReconciler,
    OutcomeKind,
    classify,
    filter_fees,
    is_paid,
)
from mhostel.client.session import SessionContext

__all__ = [
    "AmountValidationError",
    "CollectionDraft",
    "CollectionOutcome",
    "FeeCollectionReconciler",
    "LedgerAuthError",
    "LedgerClient",
    "LedgerError",
    "LedgerServerError",
    "LedgerTransportError",
    "Notifier",
    "OutcomeKind",
    "SessionContext",
    "classify",
    "filter_fees",
    "is_paid",
    "login",
]
