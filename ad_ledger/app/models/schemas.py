from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .db import EntryKind, EntryStatus, OwnerType, PayoutStatus


class AccountCreate(BaseModel):
    owner_type: OwnerType
    owner_id: str = Field(..., min_length=1, description="User id of the advertiser or venue owner")
    display_name: str = Field(..., min_length=1, description="Business name shown on reports")
    commission_bps: Optional[int] = Field(
        default=None, ge=0, le=10000, description="Venue commission in basis points"
    )


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_type: OwnerType
    owner_id: str
    display_name: str
    balance: int = Field(..., ge=0, description="Balance in minor units (e.g. cents)")
    total_spent: int = Field(..., ge=0)
    commission_bps: int
    version: int
    created_at: datetime
    updated_at: datetime


class CommissionUpdate(BaseModel):
    commission_bps: int = Field(..., ge=0, le=10000)


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    account_id: UUID
    amount: int
    kind: EntryKind
    status: EntryStatus
    external_reference: Optional[str] = None
    memo: Optional[str] = Field(default=None, description="Human-readable memo")
    balance_after: int


class AdvertiserBalanceResponse(BaseModel):
    account_id: UUID
    balance: int
    total_spent: int
    currency: str


class TransactionHistoryResponse(BaseModel):
    transactions: list[LedgerEntryResponse]


class PaymentIntentRequest(BaseModel):
    amount: int = Field(..., ge=1, description="Deposit amount in minor units")


class PaymentIntentResponse(BaseModel):
    client_secret: Optional[str]
    payment_intent_id: str


class WebhookAck(BaseModel):
    received: bool = True
    applied: bool = False
    entry_id: Optional[UUID] = None


class PayoutRequestCreate(BaseModel):
    amount: int = Field(..., ge=1, description="Amount in minor units (must be >= 1)")
    payout_method: str = Field(..., min_length=1)
    payout_details: dict[str, Any] = Field(default_factory=dict)


class PayoutProcess(BaseModel):
    transaction_id: Optional[str] = Field(default=None, description="Provider transfer id")
    notes: Optional[str] = None


class PayoutReject(BaseModel):
    notes: Optional[str] = None


class PayoutRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    amount: int
    status: PayoutStatus
    payout_method: str
    payout_details: dict[str, Any]
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    ledger_entry_id: Optional[UUID] = None
    created_at: datetime


class PayoutListResponse(BaseModel):
    payouts: list[PayoutRequestResponse]


class EarningsResponse(BaseModel):
    earnings: list[LedgerEntryResponse]
    total: int
    page: int
    total_pages: int
    total_earned: int
    current_balance: int


class BillingRequest(BaseModel):
    advertiser_id: str = Field(..., min_length=1)
    venue_id: str = Field(..., min_length=1)
    campaign_location_id: str = Field(..., min_length=1)
    period: str = Field(..., min_length=1, description="Billing period label, e.g. 2024-W12")
    gross_amount: int = Field(..., ge=1)


class BillingResponse(BaseModel):
    charge: LedgerEntryResponse
    accrual: Optional[LedgerEntryResponse] = None
    commission: int


class OverviewResponse(BaseModel):
    total_revenue: int
    total_advertiser_balance: int
    total_owed_to_venues: int
    pending_payout_count: int
    pending_payout_amount: int


class ReconcileResponse(BaseModel):
    account_id: UUID
    stored_balance: int
    ledger_balance: int
    entry_count: int
    consistent: bool



class FinancialReportRow(BaseModel):
    day: date
    revenue: int
    advertisers: int
    venue_payouts: int


class FinancialReportResponse(BaseModel):
    start_date: date
    end_date: date
    report: list[FinancialReportRow]
