from .accrual import AccrualService, BillingResult, split_commission
from .deposits import DepositProcessor
from .ledger import LedgerStore
from .payouts import PayoutProcessor
from .reporting import ReportingService
from .repository import LedgerRepository
from .stripe_gateway import StripeGateway

__all__ = [
    "AccrualService",
    "BillingResult",
    "DepositProcessor",
    "LedgerRepository",
    "LedgerStore",
    "PayoutProcessor",
    "ReportingService",
    "StripeGateway",
    "split_commission",
]
