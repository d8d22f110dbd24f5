"""
Billing Orchestrator - one invoice run for one account and period.

    validate -> aggregate usage -> price charges -> build -> finalize -> persist

Rates are resolved against a single as-of instant fixed at the start of the
run. Runs for the same (account, period) are serialized in-process and
rejected at the database by the unique period constraint.
"""
import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.config import settings
from coldstore.core.exceptions import (
    AccountNotFoundError, BillingError, DuplicateInvoiceError, InvalidBillingPeriodError
)
from coldstore.models.billing import Invoice, as_utc
from coldstore.models.operations import StorageZone
from coldstore.services.charge_resolver import ChargeResolver
from coldstore.services.invoice_builder import InvoiceBuilder
from coldstore.services.rate_catalog import RateCatalog
from coldstore.services.usage_aggregator import DEFAULT_ZONE_TIERS, UsageAggregator
from coldstore.services.usage_sources import SqlUsageSource, UsageSource


logger = logging.getLogger(__name__)

RunKey = Tuple[uuid.UUID, date, date]

_generation_locks: Dict[RunKey, asyncio.Lock] = {}


def _lock_for(key: RunKey) -> asyncio.Lock:
    lock = _generation_locks.get(key)
    if lock is None:
        lock = _generation_locks[key] = asyncio.Lock()
    return lock


class BillingOrchestrator:
    """Sequences usage aggregation, charge resolution and invoice building."""

    def __init__(
        self,
        db: AsyncSession,
        usage_source: Optional[UsageSource] = None,
        rate_catalog: Optional[RateCatalog] = None,
        zone_tiers: Mapping[StorageZone, str] = DEFAULT_ZONE_TIERS,
        fallback_to_global: Optional[bool] = None,
    ):
        self.db = db
        self.usage_source = usage_source or SqlUsageSource(db)
        self.rate_catalog = rate_catalog or RateCatalog(db)
        self.aggregator = UsageAggregator(self.usage_source, zone_tiers)
        if fallback_to_global is None:
            fallback_to_global = settings.BILLING_GLOBAL_RATE_FALLBACK
        self.resolver = ChargeResolver(self.rate_catalog, fallback_to_global)

    async def _validate(
        self, account_id: uuid.UUID, period_start: date, period_end: date
    ) -> None:
        if period_end <= period_start:
            raise InvalidBillingPeriodError(period_start, period_end)
        if not await self.usage_source.account_exists(account_id):
            raise AccountNotFoundError(account_id)

    async def _build(
        self,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
        as_of: Optional[datetime] = None,
    ) -> InvoiceBuilder:
        await self._validate(account_id, period_start, period_end)

        as_of = as_utc(as_of) if as_of else datetime.now(timezone.utc)

        buckets = await self.aggregator.aggregate(account_id, period_start, period_end)
        charges = await self.resolver.resolve(account_id, buckets, as_of)

        builder = InvoiceBuilder(account_id, period_start, period_end, rates_as_of=as_of)
        builder.add_charges(charges)
        builder.finalize()
        return builder

    async def build_invoice(
        self,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
        as_of: Optional[datetime] = None,
    ) -> Invoice:
        """Compute a finalized invoice without persisting anything."""
        builder = await self._build(account_id, period_start, period_end, as_of)
        return builder.invoice

    async def _existing_invoice(
        self, account_id: uuid.UUID, period_start: date, period_end: date
    ) -> Optional[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(
                and_(
                    Invoice.account_id == account_id,
                    Invoice.period_start == period_start,
                    Invoice.period_end == period_end,
                )
            )
        )
        return result.scalar_one_or_none()

    async def generate_invoice(
        self,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
        as_of: Optional[datetime] = None,
    ) -> Invoice:
        """
        Build, finalize and persist the invoice for one account/period.

        The invoice and its lines are committed together or not at all.

        Raises:
            InvalidBillingRequestError: bad period or unknown account
            DuplicateInvoiceError: invoice already exists or is being generated
            UsageSourceError: an upstream usage query failed
        """
        if period_end <= period_start:
            raise InvalidBillingPeriodError(period_start, period_end)

        key = (account_id, period_start, period_end)
        lock = _lock_for(key)
        if lock.locked():
            raise DuplicateInvoiceError(account_id, period_start, period_end)

        async with lock:
            logger.info(
                "Billing run started for account %s [%s, %s)",
                account_id, period_start, period_end
            )
            try:
                if await self._existing_invoice(account_id, period_start, period_end):
                    raise DuplicateInvoiceError(account_id, period_start, period_end)

                builder = await self._build(account_id, period_start, period_end, as_of)
                invoice = await builder.persist(self.db)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                logger.warning("Duplicate invoice rejected by database for %s: %s", key, e.orig)
                raise DuplicateInvoiceError(account_id, period_start, period_end) from e
            except BillingError as e:
                await self.db.rollback()
                logger.warning("Billing run rejected for account %s: %s", account_id, e)
                raise
            except Exception:
                await self.db.rollback()
                logger.exception(
                    "Billing run aborted for account %s [%s, %s)",
                    account_id, period_start, period_end
                )
                raise
            finally:
                _generation_locks.pop(key, None)

        logger.info(
            "Billing run finished for account %s: invoice %s, %d line(s), total %s",
            account_id, invoice.invoice_number, len(invoice.lines), invoice.total_amount
        )
        return invoice
