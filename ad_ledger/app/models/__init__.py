from .db import Account as AccountModel
from .db import EntryKind, EntryStatus, OwnerType, PayoutStatus
from .db import LedgerEntry as LedgerEntryModel
from .db import PayoutRequest as PayoutRequestModel
from .schemas import (
    AccountCreate,
    AccountResponse,
    AdvertiserBalanceResponse,
    BillingRequest,
    BillingResponse,
    CommissionUpdate,
    EarningsResponse,
    FinancialReportResponse,
    FinancialReportRow,
    LedgerEntryResponse,
    OverviewResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PayoutListResponse,
    PayoutProcess,
    PayoutReject,
    PayoutRequestCreate,
    PayoutRequestResponse,
    ReconcileResponse,
    TransactionHistoryResponse,
    WebhookAck,
)

__all__ = [
    "AccountCreate",
    "AccountResponse",
    "AdvertiserBalanceResponse",
    "BillingRequest",
    "BillingResponse",
    "CommissionUpdate",
    "EarningsResponse",
    "FinancialReportResponse",
    "FinancialReportRow",
    "LedgerEntryResponse",
    "OverviewResponse",
    "PaymentIntentRequest",
    "PaymentIntentResponse",
    "PayoutListResponse",
    "PayoutProcess",
    "PayoutReject",
    "PayoutRequestCreate",
    "PayoutRequestResponse",
    "ReconcileResponse",
    "TransactionHistoryResponse",
    "WebhookAck",
    "AccountModel",
    "LedgerEntryModel",
    "PayoutRequestModel",
    "EntryKind",
    "EntryStatus",
    "OwnerType",
    "PayoutStatus",
]
