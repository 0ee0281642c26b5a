from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlmodel import Session

from ..core.errors import InvalidRequestError
from ..models import EntryKind, LedgerEntryModel, OwnerType
from .ledger import LedgerStore


logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10000


def split_commission(gross_amount: int, commission_bps: int) -> tuple[int, int]:
    """Return ``(venue_share, commission)`` for a billed amount.

    Commission is rounded down so leftover cents go to the venue, and the two
    parts always add back up to ``gross_amount``.
    """
    commission = gross_amount * commission_bps // BPS_DENOMINATOR
    return gross_amount - commission, commission


@dataclass
class BillingResult:
    charge: LedgerEntryModel
    accrual: Optional[LedgerEntryModel]
    commission: int


class AccrualService:
    def __init__(self, session: Session, ledger: Optional[LedgerStore] = None) -> None:
        self.session = session
        self.ledger = ledger or LedgerStore(session)

    def accrue_earnings(
        self,
        venue_id: str,
        campaign_location_id: str,
        amount: int,
        external_reference: Optional[str] = None,
    ) -> LedgerEntryModel:
        """Credit a venue for billed display time.

        ``amount`` is already net of commission. A location is billed many
        times, so only an explicit ``external_reference`` (one per billing
        period) makes the credit idempotent. Runs inside the caller's
        transaction when there is one; commit with ``LedgerStore.atomic``.
        """
        account = self.ledger.account_for_owner(OwnerType.VENUE, venue_id)
        return self.ledger.credit(
            account.id,
            amount,
            EntryKind.CAMPAIGN_ACCRUAL,
            external_reference=external_reference,
            memo=f"Campaign location {campaign_location_id}",
        )

    def bill_campaign_location(
        self,
        advertiser_id: str,
        venue_id: str,
        campaign_location_id: str,
        period: str,
        gross_amount: int,
    ) -> BillingResult:
        if gross_amount <= 0:
            raise InvalidRequestError("Billed amount must be positive")

        reference = f"{campaign_location_id}:{period}"
        with self.ledger.atomic():
            advertiser = self.ledger.account_for_owner(OwnerType.ADVERTISER, advertiser_id)
            venue = self.ledger.account_for_owner(OwnerType.VENUE, venue_id)
            venue_share, commission = split_commission(gross_amount, venue.commission_bps)

            charge = self.ledger.debit(
                advertiser.id,
                gross_amount,
                EntryKind.CAMPAIGN_CHARGE,
                external_reference=reference,
                memo=f"Campaign location {campaign_location_id} ({period})",
            )
            accrual = None
            if venue_share > 0:
                accrual = self.accrue_earnings(
                    venue_id, campaign_location_id, venue_share, external_reference=reference
                )

        logger.info(
            "billing.completed",
            extra={
                "campaign_location_id": campaign_location_id,
                "period": period,
                "gross_amount": gross_amount,
                "venue_share": venue_share,
                "commission": commission,
            },
        )
        return BillingResult(charge=charge, accrual=accrual, commission=commission)
