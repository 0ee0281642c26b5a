from __future__ import annotations

import logging
from typing import Optional

from sqlmodel import Session

from ..core.errors import (
    BelowMinimumError,
    DuplicateExternalReferenceError,
    InvalidRequestError,
)
from ..models import EntryKind, LedgerEntryModel, OwnerType
from .ledger import LedgerStore
from .stripe_gateway import CreatedIntent, StripeGateway


logger = logging.getLogger(__name__)


class DepositProcessor:
    """Turns confirmed payments into advertiser balance credits.

    Payment providers deliver webhooks at least once, so a deposit is keyed
    by the provider's payment id and applied at most once per advertiser.
    """

    def __init__(
        self,
        session: Session,
        gateway: StripeGateway,
        *,
        currency: str = "usd",
        minimum_deposit: int = 1,
        ledger: Optional[LedgerStore] = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.currency = currency
        self.minimum_deposit = minimum_deposit
        self.ledger = ledger or LedgerStore(session)

    def handle_webhook(
        self, payload: bytes, signature_header: Optional[str]
    ) -> Optional[LedgerEntryModel]:
        event = self.gateway.verify_event(payload, signature_header)
        deposit = self.gateway.deposit_from_event(event)
        if deposit is None:
            logger.info("webhook.ignored", extra={"event_type": event.get("type")})
            return None
        if deposit.currency != self.currency.lower():
            raise InvalidRequestError(
                f"Payment {deposit.external_reference} is in {deposit.currency}, "
                f"ledger currency is {self.currency}"
            )
        return self.handle_deposit_confirmed(
            deposit.external_reference, deposit.advertiser_id, deposit.amount
        )

    def handle_deposit_confirmed(
        self, external_reference: str, advertiser_id: str, amount: int
    ) -> LedgerEntryModel:
        account = self.ledger.account_for_owner(OwnerType.ADVERTISER, advertiser_id)
        account_id = account.id

        existing = self.ledger.find_entry(account_id, EntryKind.DEPOSIT, external_reference)
        if existing is not None:
            logger.info(
                "deposit.duplicate",
                extra={"account_id": str(account_id), "external_reference": external_reference},
            )
            return existing

        try:
            with self.ledger.atomic():
                entry = self.ledger.credit(
                    account_id,
                    amount,
                    EntryKind.DEPOSIT,
                    external_reference=external_reference,
                    memo="Card deposit",
                )
                self.ledger.add_lifetime_spend(account, amount)
        except DuplicateExternalReferenceError:
            # Lost a race against a concurrent delivery of the same event.
            logger.info(
                "deposit.duplicate",
                extra={"account_id": str(account_id), "external_reference": external_reference},
            )
            return self.ledger.find_entry(account_id, EntryKind.DEPOSIT, external_reference)

        logger.info(
            "deposit.credited",
            extra={
                "account_id": str(account_id),
                "external_reference": external_reference,
                "amount": amount,
            },
        )
        return entry

    def create_payment_intent(self, advertiser_id: str, amount: int) -> CreatedIntent:
        if amount < self.minimum_deposit:
            raise BelowMinimumError(f"Minimum deposit amount is {self.minimum_deposit}")
        account = self.ledger.account_for_owner(OwnerType.ADVERTISER, advertiser_id)
        account_id = account.id
        metadata = {"advertiser_id": advertiser_id, "account_id": str(account_id)}

        customer_id = account.stripe_customer_id
        if customer_id is None:
            customer_id = self.gateway.create_customer(account.display_name, metadata)
            with self.ledger.atomic():
                self.ledger.set_stripe_customer(account_id, customer_id)
            logger.info(
                "deposit.customer_created",
                extra={"account_id": str(account_id), "customer_id": customer_id},
            )

        intent = self.gateway.create_payment_intent(
            amount, self.currency, metadata=metadata, customer_id=customer_id
        )
        logger.info(
            "deposit.intent_created",
            extra={"account_id": str(account_id), "payment_intent_id": intent.payment_intent_id},
        )
        return intent
