from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from ..core.errors import (
    BelowMinimumError,
    InsufficientFundsError,
    PayoutAlreadyProcessedError,
    PayoutRequestNotFoundError,
    StorageFailureError,
)
from ..core.security import Role
from ..models import EntryKind, OwnerType, PayoutRequestModel, PayoutStatus
from ..services import LedgerStore, PayoutProcessor

MINIMUM = 10000


class _DebitThenFailLedger(LedgerStore):
    """Debits, then fails before the transaction can commit."""

    def debit(self, *args, **kwargs):
        super().debit(*args, **kwargs)
        raise OperationalError("UPDATE payoutrequest", {}, Exception("connection reset"))


def _funded_venue(session: Session, balance: int, owner_id: str = "venue-1"):
    store = LedgerStore(session)
    with store.atomic():
        account = store.open_account(OwnerType.VENUE, owner_id, "Corner Cafe", 2000)
        store.credit(account.id, balance, EntryKind.CAMPAIGN_ACCRUAL, external_reference="cl-1:w1")
    return account


def test_request_payout_creates_pending_request_without_ledger_effect(session: Session) -> None:
    account = _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)

    request = processor.request_payout("venue-1", 20000, "paypal", {"email": "cafe@example.com"})

    assert request.status == PayoutStatus.PENDING
    assert request.payout_details == {"email": "cafe@example.com"}
    assert processor.ledger.balance_of(account.id) == 50000
    assert processor.ledger.repository.count_entries(account.id, EntryKind.PAYOUT) == 0


def test_request_payout_below_minimum(session: Session) -> None:
    _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)

    with pytest.raises(BelowMinimumError):
        processor.request_payout("venue-1", MINIMUM - 1, "paypal")


def test_request_payout_above_balance(session: Session) -> None:
    _funded_venue(session, 15000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)

    with pytest.raises(InsufficientFundsError):
        processor.request_payout("venue-1", 15001, "paypal")
    assert processor.history("venue-1") == []


def test_process_payout_debits_and_completes(session: Session) -> None:
    account = _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)
    request = processor.request_payout("venue-1", 20000, "bank_transfer")

    completed = processor.process_payout(request.id, "admin-1", "tr_42", "March payout")

    assert completed.status == PayoutStatus.COMPLETED
    assert completed.processed_by == "admin-1"
    assert completed.transaction_id == "tr_42"
    assert completed.processed_at is not None
    assert completed.ledger_entry_id is not None
    assert processor.ledger.balance_of(account.id) == 30000
    assert processor.ledger.recompute_balance(account.id) == 30000


def test_processing_twice_is_rejected_and_debits_once(session: Session) -> None:
    account = _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)
    request = processor.request_payout("venue-1", 20000, "bank_transfer")
    processor.process_payout(request.id, "admin-1")

    with pytest.raises(PayoutAlreadyProcessedError):
        processor.process_payout(request.id, "admin-1")

    assert processor.ledger.balance_of(account.id) == 30000
    assert processor.ledger.repository.count_entries(account.id, EntryKind.PAYOUT) == 1


def test_process_unknown_request(session: Session) -> None:
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)

    with pytest.raises(PayoutRequestNotFoundError):
        processor.process_payout(uuid4(), "admin-1")


def test_failed_debit_leaves_request_pending_and_balance_untouched(session: Session) -> None:
    account = _funded_venue(session, 50000)
    request_id = PayoutProcessor(session, minimum_payout=MINIMUM).request_payout(
        "venue-1", 20000, "bank_transfer"
    ).id
    failing = PayoutProcessor(
        session, minimum_payout=MINIMUM, ledger=_DebitThenFailLedger(session)
    )

    with pytest.raises(StorageFailureError):
        failing.process_payout(request_id, "admin-1", "tr_1")

    store = LedgerStore(session)
    request = session.get(PayoutRequestModel, request_id)
    assert request.status == PayoutStatus.PENDING
    assert request.processed_by is None
    assert store.balance_of(account.id) == 50000
    assert store.repository.count_entries(account.id, EntryKind.PAYOUT) == 0


def test_second_payout_rechecks_balance_at_processing_time(session: Session) -> None:
    account = _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)

    small = processor.request_payout("venue-1", 20000, "paypal")
    large = processor.request_payout("venue-1", 40000, "paypal")
    processor.process_payout(large.id, "admin-1")

    with pytest.raises(InsufficientFundsError):
        processor.process_payout(small.id, "admin-1")

    assert session.get(PayoutRequestModel, small.id).status == PayoutStatus.PENDING
    assert processor.ledger.balance_of(account.id) == 10000


def test_concurrent_processing_debits_once(engine) -> None:
    with Session(engine) as seed_session:
        account_id = _funded_venue(seed_session, 50000).id
        request_id = PayoutProcessor(seed_session, minimum_payout=MINIMUM).request_payout(
            "venue-1", 20000, "bank_transfer"
        ).id

    def _process(attempt: int) -> str:
        with Session(engine) as worker_session:
            processor = PayoutProcessor(worker_session, minimum_payout=MINIMUM)
            try:
                processor.process_payout(request_id, f"admin-{attempt}", f"tr_{attempt}")
            except PayoutAlreadyProcessedError:
                return "already_processed"
        return "completed"

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(_process, range(6)))

    assert outcomes.count("completed") == 1
    assert outcomes.count("already_processed") == 5

    with Session(engine) as check_session:
        store = LedgerStore(check_session)
        assert store.balance_of(account_id) == 30000
        assert store.recompute_balance(account_id) == 30000
        assert store.repository.count_entries(account_id, EntryKind.PAYOUT) == 1
        request = check_session.get(PayoutRequestModel, request_id)
        assert request.status == PayoutStatus.COMPLETED


def test_reject_payout_is_terminal(session: Session) -> None:
    account = _funded_venue(session, 50000)
    processor = PayoutProcessor(session, minimum_payout=MINIMUM)
    request = processor.request_payout("venue-1", 20000, "paypal")

    rejected = processor.reject_payout(request.id, "admin-1", "Details do not match")

    assert rejected.status == PayoutStatus.REJECTED
    assert processor.ledger.balance_of(account.id) == 50000
    with pytest.raises(PayoutAlreadyProcessedError):
        processor.process_payout(request.id, "admin-1")


def test_payout_scenario_over_http(
    client: TestClient, seed_account, auth_headers, admin
) -> None:
    account_id = seed_account(OwnerType.VENUE, "venue-1", balance=50000)
    venue = auth_headers(Role.VENUE, "venue-1")

    small = client.post(
        "/venue/payout/request",
        json={"amount": 20000, "payout_method": "paypal", "payout_details": {"email": "v@x.io"}},
        headers=venue,
    )
    large = client.post(
        "/venue/payout/request",
        json={"amount": 40000, "payout_method": "paypal"},
        headers=venue,
    )
    assert small.status_code == 201
    assert large.status_code == 201

    pending = client.get("/admin/payouts", headers=admin).json()["payouts"]
    assert {p["id"] for p in pending} == {small.json()["id"], large.json()["id"]}

    processed = client.post(
        f"/admin/payouts/{large.json()['id']}/process",
        json={"transaction_id": "tr_1", "notes": "weekly run"},
        headers=admin,
    )
    assert processed.status_code == 200
    assert processed.json()["status"] == "completed"

    refused = client.post(
        f"/admin/payouts/{small.json()['id']}/process",
        json={"transaction_id": "tr_2"},
        headers=admin,
    )
    assert refused.status_code == 409
    assert refused.json()["error"] == "insufficient_funds"

    history = client.get("/venue/payout/history", headers=venue).json()["payouts"]
    statuses = {p["id"]: p["status"] for p in history}
    assert statuses[small.json()["id"]] == "pending"
    assert statuses[large.json()["id"]] == "completed"

    earnings = client.get("/venue/earnings", headers=venue).json()
    assert earnings["current_balance"] == 10000

    reconcile = client.get(f"/admin/accounts/{account_id}/reconcile", headers=admin).json()
    assert reconcile["consistent"] is True
    assert reconcile["ledger_balance"] == 10000


def test_process_already_completed_over_http_returns_404(
    client: TestClient, seed_account, auth_headers, admin
) -> None:
    seed_account(OwnerType.VENUE, "venue-1", balance=50000)
    request_id = client.post(
        "/venue/payout/request",
        json={"amount": 20000, "payout_method": "paypal"},
        headers=auth_headers(Role.VENUE, "venue-1"),
    ).json()["id"]

    client.post(f"/admin/payouts/{request_id}/process", json={}, headers=admin)
    again = client.post(f"/admin/payouts/{request_id}/process", json={}, headers=admin)

    assert again.status_code == 404
    assert again.json()["error"] == "not_found"


def test_payout_below_minimum_over_http(client: TestClient, seed_account, auth_headers) -> None:
    seed_account(OwnerType.VENUE, "venue-1", balance=50000)

    response = client.post(
        "/venue/payout/request",
        json={"amount": 500, "payout_method": "paypal"},
        headers=auth_headers(Role.VENUE, "venue-1"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "below_minimum"


def test_venue_cannot_process_payouts(client: TestClient, seed_account, auth_headers) -> None:
    seed_account(OwnerType.VENUE, "venue-1", balance=50000)
    venue = auth_headers(Role.VENUE, "venue-1")
    request_id = client.post(
        "/venue/payout/request",
        json={"amount": 20000, "payout_method": "paypal"},
        headers=venue,
    ).json()["id"]

    response = client.post(f"/admin/payouts/{request_id}/process", json={}, headers=venue)

    assert response.status_code == 403
