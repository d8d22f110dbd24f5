"""
Charge Resolver - prices usage buckets against the rate catalogue.

Storage is billed per zone by weight when a Kg rate applies, otherwise by
pallet; never both. Every other bucket is priced once. Buckets without a
rate or without usage produce no charge and no error.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from coldstore.core.money import ZERO, format_fixed, format_quantity, line_amount
from coldstore.models.billing import Rate, RateUom, ServiceCategory
from coldstore.services.rate_catalog import RateCatalog
from coldstore.services.usage_aggregator import UsageBucket


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Charge:
    """A priced bucket, ready to become an invoice line."""
    category: ServiceCategory
    uom: RateUom
    tier: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    description: str

    @property
    def amount(self) -> Decimal:
        return line_amount(self.quantity, self.unit_price)


Describe = Callable[[UsageBucket], str]

STORAGE_DESCRIPTIONS: Dict[RateUom, Describe] = {
    RateUom.KG: lambda b: f"{b.tier} Storage for {format_fixed(b.quantity)} kg-days.",
    RateUom.PALLET: lambda b: f"{b.tier} Storage for {format_quantity(b.quantity)} pallet-days.",
}

DESCRIPTIONS: Dict[str, Describe] = {
    "handling_inbound": lambda b: f"Handling (Inbound/Receiving) for {format_fixed(b.quantity)} kg.",
    "handling_picking": lambda b: f"Handling (Picking) for {format_quantity(b.quantity)} units.",
    "handling_outbound": lambda b: f"Handling (Outbound/Shipping) for {format_fixed(b.quantity)} kg.",
    "blasting": lambda b: f"Blast Freezing service for {format_fixed(b.quantity)} kg.",
    "repack": lambda b: f"Repackaging service for {format_quantity(b.quantity)} units.",
    "split": lambda b: f"Material Split service for {format_quantity(b.quantity)} units.",
    "labeling": lambda b: f"Compliance Labeling service for {format_quantity(b.quantity)} units.",
    "fumigation": lambda b: f"Fumigation/Quarantine service ({format_quantity(b.quantity)} cycle(s)).",
    "cycle_count": lambda b: f"Inventory Cycle Count service ({format_fixed(b.quantity)} hours).",
    "cross_dock": lambda b: f"Cross-Docking service for {format_quantity(b.quantity)} pallet(s).",
    "surcharge_expedited": lambda b: f"Expedited Order Surcharge ({format_quantity(b.quantity)} shipment(s)).",
    "kitting_labor": lambda b: f"Kitting Labor ({format_fixed(b.quantity)} hours).",
    "kitting_assembly": lambda b: f"Kitting Assembly Fee ({format_quantity(b.quantity)} kits).",
}


def describe(bucket: UsageBucket) -> str:
    if bucket.category == ServiceCategory.STORAGE:
        return STORAGE_DESCRIPTIONS[bucket.uom](bucket)
    template = DESCRIPTIONS.get(bucket.key)
    if template is None:
        return f"{bucket.category.value.title()} service ({format_quantity(bucket.quantity)} {bucket.uom.value.lower()})."
    return template(bucket)


class ChargeResolver:
    """Turns usage buckets into charges using rates fixed at one instant."""

    def __init__(self, catalog: RateCatalog, fallback_to_global: bool = False):
        self.catalog = catalog
        self.fallback_to_global = fallback_to_global

    async def _lookup(
        self, account_id: uuid.UUID, bucket: UsageBucket, as_of: datetime
    ) -> Optional[Rate]:
        rate = await self.catalog.resolve(
            account_id, bucket.category, bucket.uom, bucket.tier, as_of=as_of
        )
        if rate is None and self.fallback_to_global:
            rate = await self.catalog.resolve(
                None, bucket.category, bucket.uom, bucket.tier, as_of=as_of
            )
        return rate

    def _charge(self, bucket: UsageBucket, rate: Rate) -> Charge:
        return Charge(
            category=bucket.category,
            uom=bucket.uom,
            tier=bucket.tier,
            quantity=bucket.quantity,
            unit_price=rate.unit_price,
            description=describe(bucket),
        )

    async def resolve(
        self,
        account_id: uuid.UUID,
        buckets: Sequence[UsageBucket],
        as_of: datetime,
    ) -> List[Charge]:
        """
        Price buckets. Storage charges come first, one per zone in the order
        zones first appear, followed by the other buckets in their order.
        """
        storage_by_zone: Dict[object, Dict[RateUom, UsageBucket]] = {}
        others: List[UsageBucket] = []

        for bucket in buckets:
            if bucket.category == ServiceCategory.STORAGE:
                zone_key = bucket.zone if bucket.zone is not None else bucket.tier
                storage_by_zone.setdefault(zone_key, {})[bucket.uom] = bucket
            else:
                others.append(bucket)

        charges: List[Charge] = []
        for zone in storage_by_zone.values():
            charge = await self._resolve_storage(
                account_id, zone.get(RateUom.KG), zone.get(RateUom.PALLET), as_of
            )
            if charge is not None:
                charges.append(charge)

        for bucket in others:
            charge = await self._resolve_single(account_id, bucket, as_of)
            if charge is not None:
                charges.append(charge)

        return charges

    async def _resolve_single(
        self, account_id: uuid.UUID, bucket: UsageBucket, as_of: datetime
    ) -> Optional[Charge]:
        if bucket.quantity <= ZERO:
            logger.debug("Skipping %s: no usage", bucket.key)
            return None
        rate = await self._lookup(account_id, bucket, as_of)
        if rate is None:
            logger.debug("Skipping %s: no rate configured", bucket.key)
            return None
        return self._charge(bucket, rate)

    async def _resolve_storage(
        self,
        account_id: uuid.UUID,
        kg_bucket: Optional[UsageBucket],
        pallet_bucket: Optional[UsageBucket],
        as_of: datetime,
    ) -> Optional[Charge]:
        if kg_bucket is not None and kg_bucket.quantity > ZERO:
            kg_rate = await self._lookup(account_id, kg_bucket, as_of)
            if kg_rate is not None:
                return self._charge(kg_bucket, kg_rate)

        if pallet_bucket is not None and pallet_bucket.quantity > ZERO:
            pallet_rate = await self._lookup(account_id, pallet_bucket, as_of)
            if pallet_rate is not None:
                return self._charge(pallet_bucket, pallet_rate)

        tier = (kg_bucket or pallet_bucket).tier
        logger.debug("No storage charge for tier %s", tier)
        return None
