"""Error taxonomy shared by the ledger services and the HTTP layer.

Every error carries a stable ``code`` (returned to clients as ``error``) and
the HTTP status it maps to.
"""


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400


class InvalidRequestError(LedgerError):
    """Raised when input is malformed or missing; never touches the ledger."""

    code = "validation_error"
    status_code = 400


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class AccountNotFoundError(NotFoundError):
    """Raised when an account id or owner is missing from the store."""


class PayoutRequestNotFoundError(NotFoundError):
    """Raised when a payout request id is unknown."""


class PayoutAlreadyProcessedError(NotFoundError):
    """Raised when a payout request is already completed or rejected."""


class InsufficientFundsError(LedgerError):
    """Raised when a debit or payout would drop a balance below zero."""

    code = "insufficient_funds"
    status_code = 409


class BelowMinimumError(LedgerError):
    """Raised when a payout or deposit is under the configured floor."""

    code = "below_minimum"
    status_code = 400


class DuplicateExternalReferenceError(LedgerError):
    """Raised when an external reference was already applied to an account."""

    code = "duplicate_external_reference"
    status_code = 409


class SignatureVerificationError(LedgerError):
    """Raised when a payment provider webhook fails signature verification."""

    code = "signature_verification_failed"
    status_code = 400


class AuthenticationError(LedgerError):
    code = "unauthorized"
    status_code = 401


class PermissionDeniedError(LedgerError):
    code = "forbidden"
    status_code = 403


class PaymentProviderError(LedgerError):
    """Raised when a call to the payment provider API fails."""

    code = "payment_provider_error"
    status_code = 502


class StorageFailureError(LedgerError):
    """Raised when a transaction fails to commit; nothing was persisted."""

    code = "storage_failure"
    status_code = 503
