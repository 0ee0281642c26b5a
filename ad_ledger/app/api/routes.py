from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, status

from ..core.dependencies import (
    get_accrual_service,
    get_deposit_processor,
    get_ledger_store,
    get_payout_processor,
    get_reporting_service,
    require_role,
)
from ..core.config import Settings, get_settings
from ..core.security import Principal, Role
from ..models import (
    AccountCreate,
    AccountResponse,
    AdvertiserBalanceResponse,
    BillingRequest,
    BillingResponse,
    CommissionUpdate,
    EarningsResponse,
    FinancialReportResponse,
    LedgerEntryResponse,
    OverviewResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PayoutListResponse,
    PayoutProcess,
    PayoutReject,
    PayoutRequestCreate,
    PayoutRequestResponse,
    PayoutStatus,
    ReconcileResponse,
    TransactionHistoryResponse,
    WebhookAck,
)
from ..services import (
    AccrualService,
    DepositProcessor,
    LedgerStore,
    PayoutProcessor,
    ReportingService,
)


async def raw_body(request: Request) -> bytes:
    return await request.body()


# Payments -----------------------------------------------------------------
payment_router = APIRouter(prefix="/payment", tags=["payment"])

@payment_router.post("/webhook", response_model=WebhookAck)
def payment_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    processor: DepositProcessor = Depends(get_deposit_processor),
) -> WebhookAck:
    entry = processor.handle_webhook(payload, stripe_signature)
    if entry is None:
        return WebhookAck(received=True, applied=False)
    return WebhookAck(received=True, applied=True, entry_id=entry.id)

@payment_router.post("/create-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    payload: PaymentIntentRequest,
    principal: Principal = Depends(require_role(Role.ADVERTISER)),
    processor: DepositProcessor = Depends(get_deposit_processor),
) -> PaymentIntentResponse:
    intent = processor.create_payment_intent(principal.user_id, payload.amount)
    return PaymentIntentResponse(
        client_secret=intent.client_secret,
        payment_intent_id=intent.payment_intent_id,
    )


# Advertisers --------------------------------------------------------------
advertiser_router = APIRouter(prefix="/advertiser", tags=["advertiser"])

@advertiser_router.get("/balance", response_model=AdvertiserBalanceResponse)
def get_advertiser_balance(
    principal: Principal = Depends(require_role(Role.ADVERTISER)),
    service: ReportingService = Depends(get_reporting_service),
    settings: Settings = Depends(get_settings),
) -> AdvertiserBalanceResponse:
    return service.advertiser_balance(principal.user_id, settings.currency)

@advertiser_router.get("/transactions", response_model=TransactionHistoryResponse)
def get_advertiser_transactions(
    principal: Principal = Depends(require_role(Role.ADVERTISER)),
    service: ReportingService = Depends(get_reporting_service),
) -> TransactionHistoryResponse:
    return service.advertiser_transactions(principal.user_id)


# Venues -------------------------------------------------------------------
venue_router = APIRouter(prefix="/venue", tags=["venue"])

@venue_router.post(
    "/payout/request",
    response_model=PayoutRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_payout(
    payload: PayoutRequestCreate,
    principal: Principal = Depends(require_role(Role.VENUE)),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutRequestResponse:
    request = processor.request_payout(
        principal.user_id,
        payload.amount,
        payload.payout_method,
        payload.payout_details,
    )
    return PayoutRequestResponse.model_validate(request)

@venue_router.get("/payout/history", response_model=PayoutListResponse)
def get_payout_history(
    principal: Principal = Depends(require_role(Role.VENUE)),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutListResponse:
    requests = processor.history(principal.user_id)
    return PayoutListResponse(
        payouts=[PayoutRequestResponse.model_validate(request) for request in requests]
    )

@venue_router.get("/earnings", response_model=EarningsResponse)
def get_earnings(
    page: int = 1,
    limit: int = 20,
    principal: Principal = Depends(require_role(Role.VENUE)),
    service: ReportingService = Depends(get_reporting_service),
) -> EarningsResponse:
    return service.venue_earnings(principal.user_id, page=page, limit=limit)


# Admin --------------------------------------------------------------------
admin_router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_role(Role.ADMIN))],
)

@admin_router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def open_account(
    payload: AccountCreate,
    ledger: LedgerStore = Depends(get_ledger_store),
    settings: Settings = Depends(get_settings),
) -> AccountResponse:
    commission = payload.commission_bps
    if commission is None:
        commission = settings.default_commission_bps
    with ledger.atomic():
        account = ledger.open_account(
            payload.owner_type, payload.owner_id, payload.display_name, commission
        )
    return AccountResponse.model_validate(account)

@admin_router.patch("/venues/{owner_id}/commission", response_model=AccountResponse)
def update_commission(
    owner_id: str,
    payload: CommissionUpdate,
    ledger: LedgerStore = Depends(get_ledger_store),
) -> AccountResponse:
    with ledger.atomic():
        account = ledger.set_commission(owner_id, payload.commission_bps)
    return AccountResponse.model_validate(account)

@admin_router.get("/accounts/{account_id}/reconcile", response_model=ReconcileResponse)
def reconcile_account(
    account_id: UUID,
    service: ReportingService = Depends(get_reporting_service),
) -> ReconcileResponse:
    return service.reconcile(account_id)

@admin_router.get("/overview", response_model=OverviewResponse)
def get_overview(
    service: ReportingService = Depends(get_reporting_service),
) -> OverviewResponse:
    return service.overview()

@admin_router.get("/reports/financial", response_model=FinancialReportResponse)
def get_financial_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    service: ReportingService = Depends(get_reporting_service),
) -> FinancialReportResponse:
    return service.financial_report(start_date, end_date)

@admin_router.get("/payouts", response_model=PayoutListResponse)
def list_payouts(
    status_filter: PayoutStatus | None = Query(default=PayoutStatus.PENDING, alias="status"),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutListResponse:
    requests = processor.list_requests(status_filter)
    return PayoutListResponse(
        payouts=[PayoutRequestResponse.model_validate(request) for request in requests]
    )

@admin_router.post("/payouts/{request_id}/process", response_model=PayoutRequestResponse)
def process_payout(
    request_id: UUID,
    payload: PayoutProcess,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutRequestResponse:
    request = processor.process_payout(
        request_id, principal.user_id, payload.transaction_id, payload.notes
    )
    return PayoutRequestResponse.model_validate(request)

@admin_router.post("/payouts/{request_id}/reject", response_model=PayoutRequestResponse)
def reject_payout(
    request_id: UUID,
    payload: PayoutReject,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    processor: PayoutProcessor = Depends(get_payout_processor),
) -> PayoutRequestResponse:
    request = processor.reject_payout(request_id, principal.user_id, payload.notes)
    return PayoutRequestResponse.model_validate(request)

@admin_router.post("/billing", response_model=BillingResponse, status_code=status.HTTP_201_CREATED)
def bill_campaign_location(
    payload: BillingRequest,
    service: AccrualService = Depends(get_accrual_service),
) -> BillingResponse:
    result = service.bill_campaign_location(
        payload.advertiser_id,
        payload.venue_id,
        payload.campaign_location_id,
        payload.period,
        payload.gross_amount,
    )
    return BillingResponse(
        charge=LedgerEntryResponse.model_validate(result.charge),
        accrual=(
            LedgerEntryResponse.model_validate(result.accrual)
            if result.accrual is not None
            else None
        ),
        commission=result.commission,
    )

__all__ = ["payment_router", "advertiser_router", "venue_router", "admin_router"]
