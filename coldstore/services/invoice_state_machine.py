"""
Invoice State Machine

All invoice status changes go through this module.

    DRAFT ──finalize──> FINALIZED (terminal)

Lines may only be appended while DRAFT. FINALIZED invoices are immutable:
their total is frozen and they are the only ones handed to persistence.
"""

from datetime import datetime, timezone
from typing import Dict, List

from coldstore.core.exceptions import InvoiceStateError
from coldstore.models.billing import InvoiceStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
INVOICE_TRANSITIONS: Dict[str, List[str]] = {
    InvoiceStatus.DRAFT.value: [
        InvoiceStatus.FINALIZED.value,  # Freeze total
    ],
    InvoiceStatus.FINALIZED.value: [],  # Terminal state - no transitions
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in INVOICE_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return INVOICE_TRANSITIONS.get(current_status, [])


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises InvoiceStateError if invalid.

    Unlike a plain status update, re-entering the current status is rejected:
    finalizing an already finalized invoice is a lifecycle violation.
    """
    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            raise InvoiceStateError(
                f"Invoice in '{current_status}' status cannot be modified. This is a terminal state."
            )
        raise InvoiceStateError(
            f"Cannot change invoice from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}"
        )


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def can_add_lines(status: str) -> bool:
    """Can lines be appended to this invoice?"""
    return status == InvoiceStatus.DRAFT.value


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return not INVOICE_TRANSITIONS.get(status)


def ensure_can_add_lines(status: str) -> None:
    if not can_add_lines(status):
        raise InvoiceStateError(
            f"Cannot add lines to an invoice in '{status}' status; only DRAFT invoices accept lines."
        )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_invoice(invoice, new_status: str) -> None:
    """
    Transition an invoice to a new status.

    Validates the transition, updates the status and stamps the audit field
    that belongs to the target status.

    Raises:
        InvoiceStateError: If transition is not allowed
    """
    validate_transition(invoice.status, new_status)

    invoice.status = new_status

    if new_status == InvoiceStatus.FINALIZED.value:
        invoice.finalized_at = datetime.now(timezone.utc)
