from __future__ import annotations

import math
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..core.errors import InvalidRequestError
from ..models import (
    AdvertiserBalanceResponse,
    EarningsResponse,
    EntryKind,
    FinancialReportResponse,
    FinancialReportRow,
    LedgerEntryResponse,
    OverviewResponse,
    OwnerType,
    ReconcileResponse,
    TransactionHistoryResponse,
)
from ..models.db import utcnow
from .ledger import LedgerStore


HISTORY_LIMIT = 50
REPORT_WINDOW_DAYS = 30


class ReportingService:
    """Read-only views over accounts and the entry log."""

    def __init__(self, session: Session, ledger: Optional[LedgerStore] = None) -> None:
        self.session = session
        self.ledger = ledger or LedgerStore(session)

    def advertiser_balance(self, advertiser_id: str, currency: str) -> AdvertiserBalanceResponse:
        account = self.ledger.account_for_owner(OwnerType.ADVERTISER, advertiser_id)
        return AdvertiserBalanceResponse(
            account_id=account.id,
            balance=account.balance,
            total_spent=account.total_spent,
            currency=currency,
        )

    def advertiser_transactions(self, advertiser_id: str) -> TransactionHistoryResponse:
        account = self.ledger.account_for_owner(OwnerType.ADVERTISER, advertiser_id)
        entries = self.ledger.repository.list_entries(account.id, limit=HISTORY_LIMIT)
        return TransactionHistoryResponse(
            transactions=[LedgerEntryResponse.model_validate(entry) for entry in entries]
        )

    def venue_earnings(self, venue_id: str, page: int = 1, limit: int = 20) -> EarningsResponse:
        if page < 1 or limit < 1:
            raise InvalidRequestError("page and limit must be positive")

        account = self.ledger.account_for_owner(OwnerType.VENUE, venue_id)
        repository = self.ledger.repository
        entries = repository.list_entries(
            account.id,
            kinds=[EntryKind.CAMPAIGN_ACCRUAL],
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = repository.count_entries(account.id, EntryKind.CAMPAIGN_ACCRUAL)
        return EarningsResponse(
            earnings=[LedgerEntryResponse.model_validate(entry) for entry in entries],
            total=total,
            page=page,
            total_pages=math.ceil(total / limit),
            total_earned=repository.sum_entries(account.id, EntryKind.CAMPAIGN_ACCRUAL),
            current_balance=account.balance,
        )

    def overview(self) -> OverviewResponse:
        repository = self.ledger.repository
        pending_count, pending_amount = repository.pending_payout_totals()
        return OverviewResponse(
            total_revenue=repository.sum_total_spent(),
            total_advertiser_balance=repository.sum_balances(OwnerType.ADVERTISER),
            total_owed_to_venues=repository.sum_balances(OwnerType.VENUE),
            pending_payout_count=pending_count,
            pending_payout_amount=pending_amount,
        )

    def reconcile(self, account_id: UUID) -> ReconcileResponse:
        account = self.ledger.get_account(account_id)
        ledger_balance = self.ledger.recompute_balance(account_id)
        return ReconcileResponse(
            account_id=account.id,
            stored_balance=account.balance,
            ledger_balance=ledger_balance,
            entry_count=self.ledger.repository.count_entries(account_id),
            consistent=account.balance == ledger_balance,
        )

    def financial_report(
        self, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> FinancialReportResponse:
        """Daily deposit revenue and venue payouts, newest day first.

        Both bounds are inclusive UTC dates. Without bounds the report covers
        the last ``REPORT_WINDOW_DAYS`` days up to today.
        """
        end_date = end_date or utcnow().date()
        start_date = start_date or end_date - timedelta(days=REPORT_WINDOW_DAYS)
        if start_date > end_date:
            raise InvalidRequestError("start_date must not be after end_date")

        start = datetime.combine(start_date, time.min, tzinfo=UTC)
        end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=UTC)
        repository = self.ledger.repository

        days: dict[str, dict[str, int]] = {}
        for day, total, accounts in repository.daily_entry_totals(EntryKind.DEPOSIT, start, end):
            row = days.setdefault(str(day), {"revenue": 0, "advertisers": 0, "venue_payouts": 0})
            row["revenue"] = total
            row["advertisers"] = accounts
        for day, total, _ in repository.daily_entry_totals(EntryKind.PAYOUT, start, end):
            row = days.setdefault(str(day), {"revenue": 0, "advertisers": 0, "venue_payouts": 0})
            # payout entries are stored as debits
            row["venue_payouts"] = -total

        return FinancialReportResponse(
            start_date=start_date,
            end_date=end_date,
            report=[
                FinancialReportRow(day=day, **totals)
                for day, totals in sorted(days.items(), reverse=True)
            ],
        )
