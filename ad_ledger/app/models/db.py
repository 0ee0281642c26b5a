from __future__ import annotations
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class OwnerType(str, Enum):
    ADVERTISER = "advertiser"
    VENUE = "venue"


class EntryKind(str, Enum):
    DEPOSIT = "deposit"
    PAYOUT = "payout"
    CAMPAIGN_ACCRUAL = "campaign_accrual"
    CAMPAIGN_CHARGE = "campaign_charge"


class EntryStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (PayoutStatus.COMPLETED, PayoutStatus.REJECTED)


class Account(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("owner_type", "owner_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    owner_type: OwnerType = Field(index=True)
    owner_id: str = Field(index=True)
    display_name: str
    balance: int = Field(default=0, ge=0)
    total_spent: int = Field(default=0, ge=0)
    commission_bps: int = Field(default=0, ge=0, le=10000)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    version: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LedgerEntry(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("account_id", "kind", "external_reference"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    account_id: UUID = Field(foreign_key="account.id", index=True)
    amount: int
    kind: EntryKind = Field(index=True)
    status: EntryStatus = Field(default=EntryStatus.SUCCEEDED)
    external_reference: Optional[str] = Field(default=None, index=True)
    memo: Optional[str] = None
    balance_after: int


class PayoutRequest(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    account_id: UUID = Field(foreign_key="account.id", index=True)
    amount: int = Field(gt=0)
    status: PayoutStatus = Field(default=PayoutStatus.PENDING, index=True)
    payout_method: str
    payout_details: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    ledger_entry_id: Optional[UUID] = Field(default=None, foreign_key="ledgerentry.id")
    created_at: datetime = Field(default_factory=utcnow, index=True)
