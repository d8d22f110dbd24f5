"""
Invoice Builder - accumulates charges on a DRAFT invoice and finalizes it.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.config import settings
from coldstore.core.exceptions import InvoiceStateError
from coldstore.models.billing import Invoice, InvoiceLine
from coldstore.services.charge_resolver import Charge


logger = logging.getLogger(__name__)


class InvoiceBuilder:
    """Drives one invoice from DRAFT to FINALIZED and hands it to persistence."""

    def __init__(
        self,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
        rates_as_of: Optional[datetime] = None,
        number_prefix: Optional[str] = None,
        grace_period_days: Optional[int] = None,
    ):
        self.invoice = Invoice.create(
            account_id=account_id,
            period_start=period_start,
            period_end=period_end,
            rates_as_of=rates_as_of,
            number_prefix=number_prefix or settings.INVOICE_NUMBER_PREFIX,
            grace_period_days=(
                grace_period_days if grace_period_days is not None
                else settings.INVOICE_GRACE_PERIOD_DAYS
            ),
        )

    def add_charge(self, charge: Charge) -> InvoiceLine:
        return self.invoice.add_line(
            category=charge.category,
            uom=charge.uom,
            quantity=charge.quantity,
            unit_price=charge.unit_price,
            description=charge.description,
            tier=charge.tier,
        )

    def add_charges(self, charges: Iterable[Charge]) -> None:
        for charge in charges:
            self.add_charge(charge)

    def finalize(self) -> Invoice:
        total: Decimal = self.invoice.finalize()
        logger.info(
            "Finalized invoice %s: %d line(s), total %s",
            self.invoice.invoice_number, len(self.invoice.lines), total
        )
        return self.invoice

    async def persist(self, db: AsyncSession) -> Invoice:
        """
        Stage the finalized invoice and its lines in the caller's unit of work.

        Only FINALIZED invoices are persisted; the caller commits.
        """
        if not self.invoice.is_finalized:
            raise InvoiceStateError(
                f"Invoice {self.invoice.invoice_number} must be finalized before it is persisted"
            )
        db.add(self.invoice)
        await db.flush()
        return self.invoice
