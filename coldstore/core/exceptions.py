"""
Billing exceptions.

Expected absence (no rate configured, zero usage) is not an error and never
raises; everything below is a caller, lifecycle or upstream failure.
"""
import uuid
from datetime import date
from typing import Optional


class BillingError(Exception):
    """Base exception for the billing core."""
    pass


class InvalidBillingRequestError(BillingError):
    """Raised before any aggregation when the request itself is unusable."""
    pass


class InvalidBillingPeriodError(InvalidBillingRequestError):
    """Raised when a billing period does not end after it starts."""

    def __init__(self, period_start: date, period_end: date):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Billing period end ({period_end}) must be after its start ({period_start})"
        )


class AccountNotFoundError(InvalidBillingRequestError):
    """Raised when billing is requested for an unknown account."""

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class InvoiceStateError(BillingError):
    """Raised when an invoice operation is not allowed in its current status."""
    pass


class DuplicateInvoiceError(InvoiceStateError):
    """Raised when an invoice for the same account and period already exists."""

    def __init__(self, account_id: uuid.UUID, period_start: date, period_end: date):
        self.account_id = account_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Invoice for account {account_id} covering {period_start} to {period_end} "
            f"already exists or is being generated"
        )


class UsageSourceError(BillingError):
    """Raised when an upstream usage query fails; the run is abandoned."""

    def __init__(self, query: str, cause: Optional[BaseException] = None):
        self.query = query
        message = f"Usage query '{query}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class RateNotFoundError(BillingError):
    """Raised when a rate id does not exist."""

    def __init__(self, rate_id: uuid.UUID):
        self.rate_id = rate_id
        super().__init__(f"Rate with ID {rate_id} not found")


class RateConflictError(BillingError):
    """Raised when a new rate would overlap an active rate for the same key."""
    pass
