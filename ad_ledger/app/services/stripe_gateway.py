from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe
from pydantic import BaseModel, Field, ValidationError

from ..core.errors import (
    InvalidRequestError,
    PaymentProviderError,
    SignatureVerificationError,
)


logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class _PaymentIntentObject(BaseModel):
    id: str = Field(..., min_length=1)
    amount: int = Field(..., ge=1)
    currency: str = Field(..., min_length=3, max_length=3)
    metadata: dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class DepositConfirmed:
    external_reference: str
    advertiser_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class CreatedIntent:
    payment_intent_id: str
    client_secret: Optional[str]


class StripeGateway:
    """Wraps the few Stripe calls the ledger depends on."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
    ) -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds

    def verify_event(self, payload: bytes, signature_header: Optional[str]) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header and decode the event body.

        Raises :class:`SignatureVerificationError` before anything else is
        looked at, so a forged request never reaches the ledger.
        """
        if not self.webhook_secret:
            raise SignatureVerificationError("Webhook secret is not configured")
        if not signature_header:
            raise SignatureVerificationError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SignatureVerificationError("Webhook payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                body, signature_header, self.webhook_secret, self.tolerance_seconds
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("webhook.signature_rejected", extra={"error": str(exc)})
            raise SignatureVerificationError(f"Webhook signature verification failed: {exc}") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise InvalidRequestError("Webhook payload is not valid JSON") from exc
        if not isinstance(event, dict) or "type" not in event:
            raise InvalidRequestError("Webhook payload is not a Stripe event")
        return event

    def deposit_from_event(self, event: dict[str, Any]) -> Optional[DepositConfirmed]:
        """Extract the deposit carried by a succeeded payment intent, if any."""
        if event.get("type") != PAYMENT_SUCCEEDED:
            return None
        try:
            intent = _PaymentIntentObject.model_validate(event["data"]["object"])
        except (KeyError, TypeError, ValidationError) as exc:
            raise InvalidRequestError("Malformed payment_intent.succeeded event") from exc

        advertiser_id = intent.metadata.get("advertiser_id")
        if not advertiser_id:
            raise InvalidRequestError(f"Payment intent {intent.id} has no advertiser_id metadata")
        return DepositConfirmed(
            external_reference=intent.id,
            advertiser_id=advertiser_id,
            amount=intent.amount,
            currency=intent.currency.lower(),
        )

    def create_customer(self, name: str, metadata: dict[str, str]) -> str:
        if not self.secret_key:
            raise PaymentProviderError("Stripe is not configured")
        try:
            customer = stripe.Customer.create(
                name=name,
                metadata=metadata,
                api_key=self.secret_key,
            )
        except stripe.StripeError as exc:
            logger.error("stripe.customer_failed", extra={"error": str(exc)})
            raise PaymentProviderError("Failed to create Stripe customer") from exc
        return customer.id

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        customer_id: Optional[str] = None,
    ) -> CreatedIntent:
        if not self.secret_key:
            raise PaymentProviderError("Stripe is not configured")
        params: dict[str, Any] = {"amount": amount, "currency": currency, "metadata": metadata}
        if customer_id:
            params["customer"] = customer_id
        try:
            intent = stripe.PaymentIntent.create(api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            logger.error("stripe.payment_intent_failed", extra={"error": str(exc)})
            raise PaymentProviderError("Failed to create payment intent") from exc
        return CreatedIntent(payment_intent_id=intent.id, client_secret=intent.client_secret)
