from collections.abc import Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from ..services import (
    AccrualService,
    DepositProcessor,
    LedgerRepository,
    LedgerStore,
    PayoutProcessor,
    ReportingService,
    StripeGateway,
)
from .config import Settings, get_settings
from .db import get_session
from .errors import AuthenticationError, PermissionDeniedError
from .security import Principal, Role, decode_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_ledger_store(session: Session = Depends(get_session)) -> LedgerStore:
    repository = LedgerRepository(session)
    return LedgerStore(session, repository)


def get_stripe_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )


def get_deposit_processor(
    ledger: LedgerStore = Depends(get_ledger_store),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
) -> DepositProcessor:
    return DepositProcessor(
        ledger.session,
        gateway,
        currency=settings.currency,
        minimum_deposit=settings.minimum_deposit,
        ledger=ledger,
    )


def get_payout_processor(
    ledger: LedgerStore = Depends(get_ledger_store),
    settings: Settings = Depends(get_settings),
) -> PayoutProcessor:
    return PayoutProcessor(ledger.session, minimum_payout=settings.minimum_payout, ledger=ledger)


def get_accrual_service(ledger: LedgerStore = Depends(get_ledger_store)) -> AccrualService:
    return AccrualService(ledger.session, ledger)


def get_reporting_service(ledger: LedgerStore = Depends(get_ledger_store)) -> ReportingService:
    return ReportingService(ledger.session, ledger)


def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token")
    return decode_token(credentials.credentials)


def require_role(*roles: Role) -> Callable[..., Principal]:
    """Dependency that admits only callers holding one of ``roles``."""

    def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise PermissionDeniedError(
                f"Role {principal.role.value} may not access this resource"
            )
        return principal

    return _check
