import hashlib
import hmac
import json
import time
from collections.abc import Callable
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from ..core.db import create_engine_for_url, get_engine, get_session, init_db, set_engine
from ..core.dependencies import get_stripe_gateway
from ..core.security import Role, mint_token
from ..main import app
from ..models import EntryKind, OwnerType
from ..services import LedgerStore, StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def engine(tmp_path):
    test_engine = create_engine_for_url(f"sqlite:///{tmp_path / 'test.db'}")
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def client(engine, gateway) -> TestClient:
    original_engine = get_engine()
    set_engine(engine)

    def _get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    init_db()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    set_engine(original_engine)


@pytest.fixture
def auth_headers() -> Callable[[Role, str], dict[str, str]]:
    def _headers(role: Role, user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {mint_token(user_id, role)}"}

    return _headers


@pytest.fixture
def admin(auth_headers) -> dict[str, str]:
    return auth_headers(Role.ADMIN, "admin-1")


@pytest.fixture
def signed_webhook() -> Callable[..., tuple[bytes, dict[str, str]]]:
    """Build a Stripe event body and a matching ``Stripe-Signature`` header."""

    def _build(
        event: dict,
        *,
        secret: str = WEBHOOK_SECRET,
        timestamp: Optional[int] = None,
    ) -> tuple[bytes, dict[str, str]]:
        payload = json.dumps(event).encode("utf-8")
        ts = int(time.time()) if timestamp is None else timestamp
        signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        headers = {
            "Stripe-Signature": f"t={ts},v1={signature}",
            "Content-Type": "application/json",
        }
        return payload, headers

    return _build


def payment_succeeded_event(
    intent_id: str,
    advertiser_id: str,
    amount: int,
    event_type: str = "payment_intent.succeeded",
) -> dict:
    return {
        "id": f"evt_{intent_id}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "usd",
                "metadata": {"advertiser_id": advertiser_id},
            }
        },
    }


@pytest.fixture
def seed_account(engine) -> Callable[..., str]:
    """Open an account and optionally fund it, committing before returning.

    Returns the account id as a string so no ORM state outlives the session.
    """

    def _seed(
        owner_type: OwnerType,
        owner_id: str,
        balance: int = 0,
        commission_bps: int = 2000,
    ) -> str:
        with Session(engine) as seed_session:
            store = LedgerStore(seed_session)
            with store.atomic():
                account = store.open_account(owner_type, owner_id, f"{owner_id} Inc", commission_bps)
                account_id = account.id
                if balance:
                    kind = (
                        EntryKind.DEPOSIT
                        if owner_type == OwnerType.ADVERTISER
                        else EntryKind.CAMPAIGN_ACCRUAL
                    )
                    store.credit(account_id, balance, kind, external_reference=f"seed-{owner_id}")
        return str(account_id)

    return _seed
