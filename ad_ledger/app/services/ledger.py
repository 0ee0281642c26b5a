from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from ..core.errors import (
    AccountNotFoundError,
    DuplicateExternalReferenceError,
    InsufficientFundsError,
    InvalidRequestError,
    LedgerError,
    StorageFailureError,
)
from ..models import AccountModel, EntryKind, LedgerEntryModel, OwnerType
from ..models.db import utcnow
from .repository import LedgerRepository


logger = logging.getLogger(__name__)


class LedgerStore:
    """Sole writer of account balances.

    Every balance change appends a succeeded ledger entry and updates the
    cached balance in the same flush, with the account row locked first.
    Mutating calls do not commit: run them inside :meth:`atomic` so the entry
    and the balance land together or not at all.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[LedgerRepository] = None,
    ) -> None:
        self.session = session
        self.repository = repository or LedgerRepository(session)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @contextmanager
    def atomic(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except LedgerError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("ledger.transaction_failed", extra={"error": str(exc)})
            raise StorageFailureError(
                "Ledger transaction failed; no changes were applied"
            ) from exc
        except BaseException:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def open_account(
        self,
        owner_type: OwnerType,
        owner_id: str,
        display_name: str,
        commission_bps: int = 0,
    ) -> AccountModel:
        if self.repository.get_account_by_owner(owner_type, owner_id) is not None:
            raise InvalidRequestError(
                f"{owner_type.value.capitalize()} account for {owner_id} already exists"
            )
        account = self.repository.add_account(
            owner_type=owner_type,
            owner_id=owner_id,
            display_name=display_name,
            commission_bps=commission_bps if owner_type == OwnerType.VENUE else 0,
        )
        logger.info(
            "account.opened",
            extra={
                "account_id": str(account.id),
                "owner_type": owner_type.value,
                "owner_id": owner_id,
            },
        )
        return account

    def get_account(self, account_id: UUID, *, lock: bool = False) -> AccountModel:
        account = self.repository.get_account(account_id, for_update=lock)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def account_for_owner(
        self, owner_type: OwnerType, owner_id: str, *, lock: bool = False
    ) -> AccountModel:
        account = self.repository.get_account_by_owner(owner_type, owner_id, for_update=lock)
        if account is None:
            raise AccountNotFoundError(
                f"{owner_type.value.capitalize()} account for {owner_id} not found"
            )
        return account

    def balance_of(self, account_id: UUID) -> int:
        return self.get_account(account_id).balance

    def recompute_balance(self, account_id: UUID) -> int:
        """Balance as implied by the succeeded entries of the account."""
        self.get_account(account_id)
        return self.repository.sum_entries(account_id)

    def add_lifetime_spend(self, account: AccountModel, amount: int) -> None:
        account.total_spent += amount
        account.updated_at = utcnow()
        self.session.add(account)

    def set_stripe_customer(self, account_id: UUID, customer_id: str) -> AccountModel:
        account = self.get_account(account_id, lock=True)
        account.stripe_customer_id = customer_id
        account.updated_at = utcnow()
        self.session.add(account)
        self.session.flush()
        return account

    def set_commission(self, venue_owner_id: str, commission_bps: int) -> AccountModel:
        if not 0 <= commission_bps <= 10000:
            raise InvalidRequestError("Commission must be between 0 and 10000 basis points")
        account = self.account_for_owner(OwnerType.VENUE, venue_owner_id, lock=True)
        account.commission_bps = commission_bps
        account.updated_at = utcnow()
        self.session.add(account)
        self.session.flush()
        return account

    # ------------------------------------------------------------------
    # Ledger mutations
    # ------------------------------------------------------------------
    def find_entry(
        self, account_id: UUID, kind: EntryKind, external_reference: str
    ) -> Optional[LedgerEntryModel]:
        return self.repository.find_entry(account_id, kind, external_reference)

    def credit(
        self,
        account_id: UUID,
        amount: int,
        kind: EntryKind,
        external_reference: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> LedgerEntryModel:
        self._validate_amount(amount)
        account = self.get_account(account_id, lock=True)

        if external_reference is not None:
            if self.repository.find_entry(account_id, kind, external_reference):
                raise DuplicateExternalReferenceError(
                    f"Reference {external_reference} was already applied to account {account_id}"
                )

        entry = self._apply(account, amount, kind, external_reference, memo)
        logger.info(
            "ledger.credit",
            extra={
                "account_id": str(account_id),
                "kind": kind.value,
                "amount": amount,
                "balance": account.balance,
            },
        )
        return entry

    def debit(
        self,
        account_id: UUID,
        amount: int,
        kind: EntryKind,
        external_reference: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> LedgerEntryModel:
        self._validate_amount(amount)
        account = self.get_account(account_id, lock=True)

        if account.balance < amount:
            raise InsufficientFundsError(
                f"Insufficient funds: balance {account.balance}, requested {amount}"
            )
        if external_reference is not None:
            if self.repository.find_entry(account_id, kind, external_reference):
                raise DuplicateExternalReferenceError(
                    f"Reference {external_reference} was already applied to account {account_id}"
                )

        entry = self._apply(account, -amount, kind, external_reference, memo)
        logger.info(
            "ledger.debit",
            extra={
                "account_id": str(account_id),
                "kind": kind.value,
                "amount": amount,
                "balance": account.balance,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRequestError("Amount must be a positive integer in minor units")

    def _apply(
        self,
        account: AccountModel,
        signed_amount: int,
        kind: EntryKind,
        external_reference: Optional[str],
        memo: Optional[str],
    ) -> LedgerEntryModel:
        account.balance += signed_amount
        account.version += 1
        account.updated_at = utcnow()
        self.session.add(account)
        try:
            return self.repository.add_entry(
                account_id=account.id,
                amount=signed_amount,
                kind=kind,
                balance_after=account.balance,
                external_reference=external_reference,
                memo=memo,
            )
        except IntegrityError as exc:
            # A concurrent writer committed the same reference first.
            raise DuplicateExternalReferenceError(
                f"Reference {external_reference} was already applied to account {account.id}"
            ) from exc
