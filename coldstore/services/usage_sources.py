"""
Usage read contracts.

The billing core only reads already-committed operational facts. UsageSource
is the query surface it depends on; SqlUsageSource answers it from the
operational read-model tables.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coldstore.core.money import ZERO
from coldstore.models.billing import ServiceCategory
from coldstore.models.operations import (
    Account, StorageOccupancy, ReceivingLine, PickTransaction,
    WithdrawalTransaction, VasTransaction, VasStatus, StorageZone
)


logger = logging.getLogger(__name__)


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True)
class ReceivingRecord:
    weight_kg: Decimal


@dataclass(frozen=True)
class PickRecord:
    quantity: Decimal


@dataclass(frozen=True)
class WithdrawalRecord:
    total_weight_kg: Decimal


@dataclass(frozen=True)
class VasLine:
    material_id: Optional[uuid.UUID]
    quantity: Decimal
    weight_kg: Decimal = ZERO

    @property
    def is_material(self) -> bool:
        """Physical goods processed, as opposed to labor/service units."""
        return self.material_id is not None


@dataclass(frozen=True)
class VasTransactionRecord:
    category: ServiceCategory
    input_lines: Tuple[VasLine, ...] = field(default_factory=tuple)
    output_lines: Tuple[VasLine, ...] = field(default_factory=tuple)


# ============================================================================
# CONTRACT
# ============================================================================

class UsageSource(Protocol):
    """Read-only queries over [start, end) for one account."""

    async def account_exists(self, account_id: uuid.UUID) -> bool: ...

    async def get_daily_pallet_count_by_zone(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> Dict[StorageZone, int]: ...

    async def get_daily_weight_by_zone(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> Dict[StorageZone, Decimal]: ...

    async def get_receiving_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[ReceivingRecord]: ...

    async def get_picks_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[PickRecord]: ...

    async def get_withdrawals_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[WithdrawalRecord]: ...

    async def get_vas_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[VasTransactionRecord]: ...


# ============================================================================
# SQL IMPLEMENTATION
# ============================================================================

def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class SqlUsageSource:
    """UsageSource backed by the operational read-model tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def account_exists(self, account_id: uuid.UUID) -> bool:
        count = await self.db.scalar(
            select(func.count(Account.id)).where(Account.id == account_id)
        )
        return bool(count)

    async def _occupancy_sums(
        self, account_id: uuid.UUID, start: date, end: date, column
    ) -> Dict[StorageZone, Any]:
        query = (
            select(StorageOccupancy.zone, func.sum(column))
            .where(
                and_(
                    StorageOccupancy.account_id == account_id,
                    StorageOccupancy.snapshot_date >= start,
                    StorageOccupancy.snapshot_date < end,
                )
            )
            .group_by(StorageOccupancy.zone)
        )
        result = await self.db.execute(query)

        sums = {}
        for zone, total in result.all():
            try:
                sums[StorageZone(zone)] = total or 0
            except ValueError:
                logger.warning("Skipping occupancy for account %s in unknown zone %r", account_id, zone)
        return sums

    async def get_daily_pallet_count_by_zone(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> Dict[StorageZone, int]:
        """Pallet-days per zone: one pallet present for one day counts once."""
        sums = await self._occupancy_sums(account_id, start, end, StorageOccupancy.pallet_count)
        return {zone: int(total) for zone, total in sums.items()}

    async def get_daily_weight_by_zone(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> Dict[StorageZone, Decimal]:
        """Kg-days per zone."""
        sums = await self._occupancy_sums(account_id, start, end, StorageOccupancy.weight_kg)
        return {zone: Decimal(str(total)) for zone, total in sums.items()}

    async def get_receiving_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[ReceivingRecord]:
        result = await self.db.execute(
            select(ReceivingLine).where(
                and_(
                    ReceivingLine.account_id == account_id,
                    ReceivingLine.received_at >= _day_start(start),
                    ReceivingLine.received_at < _day_start(end),
                )
            )
        )
        return [
            ReceivingRecord(weight_kg=line.weight_kg)
            for line in result.scalars().all()
        ]

    async def get_picks_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[PickRecord]:
        result = await self.db.execute(
            select(PickTransaction).where(
                and_(
                    PickTransaction.account_id == account_id,
                    PickTransaction.is_confirmed == True,  # noqa: E712
                    PickTransaction.picked_at >= _day_start(start),
                    PickTransaction.picked_at < _day_start(end),
                )
            )
        )
        return [PickRecord(quantity=pick.quantity) for pick in result.scalars().all()]

    async def get_withdrawals_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[WithdrawalRecord]:
        result = await self.db.execute(
            select(WithdrawalTransaction).where(
                and_(
                    WithdrawalTransaction.account_id == account_id,
                    WithdrawalTransaction.shipped_at >= _day_start(start),
                    WithdrawalTransaction.shipped_at < _day_start(end),
                )
            )
        )
        return [
            WithdrawalRecord(total_weight_kg=w.total_weight_kg)
            for w in result.scalars().all()
        ]

    async def get_vas_for_account(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[VasTransactionRecord]:
        """Completed VAS transactions only; planned and voided ones are not billable."""
        result = await self.db.execute(
            select(VasTransaction)
            .where(
                and_(
                    VasTransaction.account_id == account_id,
                    VasTransaction.status == VasStatus.COMPLETED.value,
                    VasTransaction.performed_at >= _day_start(start),
                    VasTransaction.performed_at < _day_start(end),
                )
            )
            .options(selectinload(VasTransaction.lines))
        )

        records = []
        for tx in result.scalars().all():
            try:
                category = ServiceCategory(tx.category)
            except ValueError:
                logger.warning("Skipping VAS transaction %s with unknown category %r", tx.id, tx.category)
                continue
            records.append(
                VasTransactionRecord(
                    category=category,
                    input_lines=tuple(
                        VasLine(l.material_id, l.quantity, l.weight_kg) for l in tx.lines if l.is_input
                    ),
                    output_lines=tuple(
                        VasLine(l.material_id, l.quantity, l.weight_kg) for l in tx.lines if not l.is_input
                    ),
                )
            )
        return records
