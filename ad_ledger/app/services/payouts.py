from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlmodel import Session

from ..core.errors import (
    BelowMinimumError,
    InsufficientFundsError,
    InvalidRequestError,
    PayoutAlreadyProcessedError,
    PayoutRequestNotFoundError,
)
from ..models import EntryKind, OwnerType, PayoutRequestModel, PayoutStatus
from ..models.db import utcnow
from .ledger import LedgerStore


logger = logging.getLogger(__name__)


class PayoutProcessor:
    """Venue withdrawals of accrued balance.

    Requesting a payout only checks the live balance; nothing is held. The
    balance is checked again under the account lock when an admin processes
    the request, in the same transaction as the debit.
    """

    def __init__(
        self,
        session: Session,
        *,
        minimum_payout: int,
        ledger: Optional[LedgerStore] = None,
    ) -> None:
        self.session = session
        self.minimum_payout = minimum_payout
        self.ledger = ledger or LedgerStore(session)

    def request_payout(
        self,
        venue_id: str,
        amount: int,
        payout_method: str,
        payout_details: Optional[dict[str, Any]] = None,
    ) -> PayoutRequestModel:
        if not payout_method:
            raise InvalidRequestError("Payout method is required")
        if amount < self.minimum_payout:
            raise BelowMinimumError(f"Minimum payout amount is {self.minimum_payout}")

        with self.ledger.atomic():
            account = self.ledger.account_for_owner(OwnerType.VENUE, venue_id)
            if amount > account.balance:
                raise InsufficientFundsError("Insufficient balance")
            request = self.ledger.repository.add_payout_request(
                account_id=account.id,
                amount=amount,
                payout_method=payout_method,
                payout_details=payout_details or {},
            )

        logger.info(
            "payout.requested",
            extra={"payout_id": str(request.id), "venue_id": venue_id, "amount": amount},
        )
        return request

    def process_payout(
        self,
        request_id: UUID,
        admin_id: str,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PayoutRequestModel:
        with self.ledger.atomic():
            request = self._pending_request(request_id)
            account = self.ledger.get_account(request.account_id, lock=True)
            if request.amount > account.balance:
                raise InsufficientFundsError(
                    f"Venue balance {account.balance} no longer covers payout of {request.amount}"
                )
            entry = self.ledger.debit(
                account.id,
                request.amount,
                EntryKind.PAYOUT,
                external_reference=str(request.id),
                memo=f"Payout via {request.payout_method}",
            )
            request.status = PayoutStatus.COMPLETED
            request.processed_by = admin_id
            request.processed_at = utcnow()
            request.transaction_id = transaction_id
            request.notes = notes
            request.ledger_entry_id = entry.id
            self.session.add(request)
            self.session.flush()

        logger.info(
            "payout.processed",
            extra={"payout_id": str(request_id), "admin_id": admin_id},
        )
        return request

    def reject_payout(
        self, request_id: UUID, admin_id: str, notes: Optional[str] = None
    ) -> PayoutRequestModel:
        with self.ledger.atomic():
            request = self._pending_request(request_id)
            request.status = PayoutStatus.REJECTED
            request.processed_by = admin_id
            request.processed_at = utcnow()
            request.notes = notes
            self.session.add(request)
            self.session.flush()

        logger.info(
            "payout.rejected",
            extra={"payout_id": str(request_id), "admin_id": admin_id},
        )
        return request

    def list_requests(self, status: Optional[PayoutStatus] = None) -> list[PayoutRequestModel]:
        return self.ledger.repository.list_payout_requests(status=status)

    def history(self, venue_id: str) -> list[PayoutRequestModel]:
        account = self.ledger.account_for_owner(OwnerType.VENUE, venue_id)
        return self.ledger.repository.list_payout_requests(account_id=account.id)

    def _pending_request(self, request_id: UUID) -> PayoutRequestModel:
        request = self.ledger.repository.get_payout_request(request_id, for_update=True)
        if request is None:
            raise PayoutRequestNotFoundError(f"Payout request {request_id} not found")
        if PayoutStatus(request.status).is_terminal:
            raise PayoutAlreadyProcessedError(
                f"Payout request {request_id} is already {PayoutStatus(request.status).value}"
            )
        return request
