from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from ..models import (
    AccountModel,
    EntryKind,
    EntryStatus,
    LedgerEntryModel,
    OwnerType,
    PayoutRequestModel,
    PayoutStatus,
)


class LedgerRepository:
    """Thin data access layer around the SQLModel session.

    Nothing here commits; callers own the transaction. ``for_update`` reads
    take a row lock (``SELECT ... FOR UPDATE``) and refresh any instance that
    is already in the identity map.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # Account operations -------------------------------------------------
    def add_account(
        self,
        *,
        owner_type: OwnerType,
        owner_id: str,
        display_name: str,
        commission_bps: int = 0,
    ) -> AccountModel:
        account = AccountModel(
            owner_type=owner_type,
            owner_id=owner_id,
            display_name=display_name,
            commission_bps=commission_bps,
        )
        self.session.add(account)
        self.session.flush()
        self.session.refresh(account)
        return account

    def get_account(
        self, account_id: UUID, *, for_update: bool = False
    ) -> Optional[AccountModel]:
        if not for_update:
            return self.session.get(AccountModel, account_id)
        stmt = (
            select(AccountModel)
            .where(AccountModel.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.exec(stmt).first()

    def get_account_by_owner(
        self, owner_type: OwnerType, owner_id: str, *, for_update: bool = False
    ) -> Optional[AccountModel]:
        stmt = (
            select(AccountModel)
            .where(AccountModel.owner_type == owner_type)
            .where(AccountModel.owner_id == owner_id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.exec(stmt).first()

    def sum_balances(self, owner_type: OwnerType) -> int:
        stmt = select(func.coalesce(func.sum(AccountModel.balance), 0)).where(
            AccountModel.owner_type == owner_type
        )
        return int(self.session.exec(stmt).one())

    def sum_total_spent(self) -> int:
        stmt = select(func.coalesce(func.sum(AccountModel.total_spent), 0)).where(
            AccountModel.owner_type == OwnerType.ADVERTISER
        )
        return int(self.session.exec(stmt).one())

    # Ledger entries -----------------------------------------------------
    def add_entry(
        self,
        *,
        account_id: UUID,
        amount: int,
        kind: EntryKind,
        balance_after: int,
        external_reference: Optional[str],
        memo: Optional[str],
    ) -> LedgerEntryModel:
        entry = LedgerEntryModel(
            account_id=account_id,
            amount=amount,
            kind=kind,
            status=EntryStatus.SUCCEEDED,
            balance_after=balance_after,
            external_reference=external_reference,
            memo=memo,
        )
        self.session.add(entry)
        self.session.flush()
        self.session.refresh(entry)
        return entry

    def find_entry(
        self, account_id: UUID, kind: EntryKind, external_reference: str
    ) -> Optional[LedgerEntryModel]:
        stmt = (
            select(LedgerEntryModel)
            .where(LedgerEntryModel.account_id == account_id)
            .where(LedgerEntryModel.kind == kind)
            .where(LedgerEntryModel.external_reference == external_reference)
            .where(LedgerEntryModel.status == EntryStatus.SUCCEEDED)
        )
        return self.session.exec(stmt).first()

    def list_entries(
        self,
        account_id: UUID,
        *,
        kinds: Optional[Sequence[EntryKind]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[LedgerEntryModel]:
        stmt = select(LedgerEntryModel).where(LedgerEntryModel.account_id == account_id)
        if kinds:
            stmt = stmt.where(LedgerEntryModel.kind.in_(list(kinds)))
        stmt = stmt.order_by(LedgerEntryModel.created_at.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.exec(stmt))

    def count_entries(self, account_id: UUID, kind: Optional[EntryKind] = None) -> int:
        stmt = select(func.count()).select_from(LedgerEntryModel).where(
            LedgerEntryModel.account_id == account_id
        )
        if kind is not None:
            stmt = stmt.where(LedgerEntryModel.kind == kind)
        return int(self.session.exec(stmt).one())

    def sum_entries(self, account_id: UUID, kind: Optional[EntryKind] = None) -> int:
        stmt = (
            select(func.coalesce(func.sum(LedgerEntryModel.amount), 0))
            .where(LedgerEntryModel.account_id == account_id)
            .where(LedgerEntryModel.status == EntryStatus.SUCCEEDED)
        )
        if kind is not None:
            stmt = stmt.where(LedgerEntryModel.kind == kind)
        return int(self.session.exec(stmt).one())

    def daily_entry_totals(
        self, kind: EntryKind, start: datetime, end: datetime
    ) -> list[tuple[Any, int, int]]:
        """Per-day ``(day, amount sum, distinct accounts)`` for entries in ``[start, end)``."""
        day = func.date(LedgerEntryModel.created_at)
        stmt = (
            select(
                day,
                func.sum(LedgerEntryModel.amount),
                func.count(func.distinct(LedgerEntryModel.account_id)),
            )
            .where(LedgerEntryModel.kind == kind)
            .where(LedgerEntryModel.status == EntryStatus.SUCCEEDED)
            .where(LedgerEntryModel.created_at >= start)
            .where(LedgerEntryModel.created_at < end)
            .group_by(day)
        )
        return [
            (row_day, int(total), int(accounts))
            for row_day, total, accounts in self.session.exec(stmt)
        ]

    # Payout requests ----------------------------------------------------
    def add_payout_request(
        self,
        *,
        account_id: UUID,
        amount: int,
        payout_method: str,
        payout_details: dict[str, Any],
    ) -> PayoutRequestModel:
        request = PayoutRequestModel(
            account_id=account_id,
            amount=amount,
            payout_method=payout_method,
            payout_details=payout_details,
        )
        self.session.add(request)
        self.session.flush()
        self.session.refresh(request)
        return request

    def get_payout_request(
        self, request_id: UUID, *, for_update: bool = False
    ) -> Optional[PayoutRequestModel]:
        if not for_update:
            return self.session.get(PayoutRequestModel, request_id)
        stmt = (
            select(PayoutRequestModel)
            .where(PayoutRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.exec(stmt).first()

    def list_payout_requests(
        self,
        *,
        status: Optional[PayoutStatus] = None,
        account_id: Optional[UUID] = None,
    ) -> list[PayoutRequestModel]:
        stmt = select(PayoutRequestModel)
        if status is not None:
            stmt = stmt.where(PayoutRequestModel.status == status)
        if account_id is not None:
            stmt = stmt.where(PayoutRequestModel.account_id == account_id)
        stmt = stmt.order_by(PayoutRequestModel.created_at.desc())
        return list(self.session.exec(stmt))

    def pending_payout_totals(self) -> tuple[int, int]:
        stmt = select(
            func.count(PayoutRequestModel.id),
            func.coalesce(func.sum(PayoutRequestModel.amount), 0),
        ).where(PayoutRequestModel.status.in_([PayoutStatus.PENDING, PayoutStatus.APPROVED]))
        count, amount = self.session.exec(stmt).one()
        return int(count), int(amount)
