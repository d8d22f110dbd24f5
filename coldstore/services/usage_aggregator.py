"""
Usage Aggregator - reduces an account's operational activity for a billing
period into usage buckets.

Each bucket is one (category, uom, tier) quantity. The mapping from raw
signals to buckets is table driven:
- Storage: daily kg / pallet occupancy per temperature zone, tier per zone
- Handling: inbound weight, picked units, outbound weight
- VAS: one reducer per service category
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from coldstore.core.exceptions import UsageSourceError
from coldstore.core.money import ZERO, to_quantity
from coldstore.models.billing import RateUom, ServiceCategory
from coldstore.models.operations import StorageZone
from coldstore.services.usage_sources import UsageSource, VasTransactionRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageBucket:
    """A single usage quantity computed for one account/period."""
    key: str
    category: ServiceCategory
    uom: RateUom
    tier: Optional[str]
    quantity: Decimal
    zone: Optional[StorageZone] = None


# Storage tier billed for each temperature zone
DEFAULT_ZONE_TIERS: Mapping[StorageZone, str] = MappingProxyType({
    StorageZone.STAGING: "Staging",
    StorageZone.CHILLING: "Chilling",
    StorageZone.FROZEN_STORAGE: "FrozenStorage",
    StorageZone.COOL_STORAGE: "CoolStorage",
    StorageZone.DEEP_FROZEN_STORAGE: "DeepFrozen",
    StorageZone.ULT_STORAGE: "ULT",
})


# ============================================================================
# VAS REDUCERS
# ============================================================================

def _material_input_weight(transactions: Iterable[VasTransactionRecord]) -> Decimal:
    return sum(
        (line.weight_kg for tx in transactions for line in tx.input_lines if line.is_material),
        ZERO
    )


def _material_input_quantity(transactions: Iterable[VasTransactionRecord]) -> Decimal:
    return sum(
        (line.quantity for tx in transactions for line in tx.input_lines if line.is_material),
        ZERO
    )


def _labor_input_quantity(transactions: Iterable[VasTransactionRecord]) -> Decimal:
    return sum(
        (line.quantity for tx in transactions for line in tx.input_lines if not line.is_material),
        ZERO
    )


def _output_quantity(transactions: Iterable[VasTransactionRecord]) -> Decimal:
    return sum(
        (line.quantity for tx in transactions for line in tx.output_lines),
        ZERO
    )


def _transaction_count(transactions: Iterable[VasTransactionRecord]) -> Decimal:
    return Decimal(sum(1 for _ in transactions))


@dataclass(frozen=True)
class VasRule:
    key: str
    uom: RateUom
    reducer: Callable[[Iterable[VasTransactionRecord]], Decimal]
    tier: Optional[str] = None


# Rules are evaluated in this order; it is also the invoice line order.
VAS_RULES: Mapping[ServiceCategory, Tuple[VasRule, ...]] = MappingProxyType({
    ServiceCategory.BLASTING: (
        VasRule("blasting", RateUom.KG, _material_input_weight),
    ),
    ServiceCategory.REPACK: (
        VasRule("repack", RateUom.EACH, _material_input_quantity),
    ),
    ServiceCategory.SPLIT: (
        VasRule("split", RateUom.EACH, _material_input_quantity),
    ),
    ServiceCategory.LABELING: (
        VasRule("labeling", RateUom.EACH, _material_input_quantity),
    ),
    ServiceCategory.FUMIGATION: (
        VasRule("fumigation", RateUom.CYCLE, _transaction_count),
    ),
    ServiceCategory.CYCLE_COUNT: (
        VasRule("cycle_count", RateUom.HOUR, _labor_input_quantity),
    ),
    ServiceCategory.CROSS_DOCK: (
        VasRule("cross_dock", RateUom.PALLET, _labor_input_quantity),
    ),
    ServiceCategory.SURCHARGE: (
        VasRule("surcharge_expedited", RateUom.SHIPMENT, _labor_input_quantity, tier="Expedited"),
    ),
    ServiceCategory.KITTING: (
        VasRule("kitting_labor", RateUom.HOUR, _labor_input_quantity),
        VasRule("kitting_assembly", RateUom.EACH, _output_quantity),
    ),
})


def storage_bucket_key(zone: StorageZone, uom: RateUom) -> str:
    return f"storage_{uom.value.lower()}:{zone.value}"


class UsageAggregator:
    """
    Pulls raw facts through a UsageSource and reduces them to buckets.

    Queries run one after another; the source may share a single database
    session.
    """

    def __init__(
        self,
        source: UsageSource,
        zone_tiers: Mapping[StorageZone, str] = DEFAULT_ZONE_TIERS,
    ):
        self.source = source
        self.zone_tiers = zone_tiers

    async def _query(self, name: str, call):
        try:
            return await call
        except UsageSourceError:
            raise
        except Exception as e:
            logger.error("Usage query %s failed: %s", name, e)
            raise UsageSourceError(name, e) from e

    async def aggregate(
        self,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> List[UsageBucket]:
        """All buckets for [period_start, period_end), storage first."""
        buckets: List[UsageBucket] = []
        buckets.extend(await self._storage_buckets(account_id, period_start, period_end))
        buckets.extend(await self._handling_buckets(account_id, period_start, period_end))
        buckets.extend(await self._vas_buckets(account_id, period_start, period_end))

        logger.debug(
            "Aggregated %d usage buckets for account %s [%s, %s)",
            len(buckets), account_id, period_start, period_end
        )
        return buckets

    async def _storage_buckets(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[UsageBucket]:
        weights = await self._query(
            "get_daily_weight_by_zone",
            self.source.get_daily_weight_by_zone(account_id, start, end)
        )
        pallets = await self._query(
            "get_daily_pallet_count_by_zone",
            self.source.get_daily_pallet_count_by_zone(account_id, start, end)
        )

        buckets = []
        for zone, tier in self.zone_tiers.items():
            # Kg bucket precedes the Pallet bucket for each zone
            buckets.append(UsageBucket(
                key=storage_bucket_key(zone, RateUom.KG),
                category=ServiceCategory.STORAGE,
                uom=RateUom.KG,
                tier=tier,
                quantity=to_quantity(weights.get(zone, ZERO)),
                zone=zone,
            ))
            buckets.append(UsageBucket(
                key=storage_bucket_key(zone, RateUom.PALLET),
                category=ServiceCategory.STORAGE,
                uom=RateUom.PALLET,
                tier=tier,
                quantity=to_quantity(pallets.get(zone, 0)),
                zone=zone,
            ))

        unmapped = (set(weights) | set(pallets)) - set(self.zone_tiers)
        if unmapped:
            logger.warning(
                "Account %s has occupancy in unbilled zones: %s",
                account_id, ", ".join(sorted(StorageZone(z).value for z in unmapped))
            )
        return buckets

    async def _handling_buckets(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[UsageBucket]:
        receiving = await self._query(
            "get_receiving_for_account",
            self.source.get_receiving_for_account(account_id, start, end)
        )
        picks = await self._query(
            "get_picks_for_account",
            self.source.get_picks_for_account(account_id, start, end)
        )
        withdrawals = await self._query(
            "get_withdrawals_for_account",
            self.source.get_withdrawals_for_account(account_id, start, end)
        )

        return [
            UsageBucket(
                key="handling_inbound",
                category=ServiceCategory.HANDLING,
                uom=RateUom.KG,
                tier=None,
                quantity=to_quantity(sum((r.weight_kg for r in receiving), ZERO)),
            ),
            UsageBucket(
                key="handling_picking",
                category=ServiceCategory.HANDLING,
                uom=RateUom.EACH,
                tier=None,
                quantity=to_quantity(sum((p.quantity for p in picks), ZERO)),
            ),
            UsageBucket(
                key="handling_outbound",
                category=ServiceCategory.HANDLING,
                uom=RateUom.KG,
                tier=None,
                quantity=to_quantity(sum((w.total_weight_kg for w in withdrawals), ZERO)),
            ),
        ]

    async def _vas_buckets(
        self, account_id: uuid.UUID, start: date, end: date
    ) -> List[UsageBucket]:
        transactions = await self._query(
            "get_vas_for_account",
            self.source.get_vas_for_account(account_id, start, end)
        )

        by_category: Dict[ServiceCategory, List[VasTransactionRecord]] = {}
        for tx in transactions:
            by_category.setdefault(ServiceCategory(tx.category), []).append(tx)

        buckets = []
        for category, rules in VAS_RULES.items():
            category_transactions = by_category.get(category, [])
            for rule in rules:
                buckets.append(UsageBucket(
                    key=rule.key,
                    category=category,
                    uom=rule.uom,
                    tier=rule.tier,
                    quantity=to_quantity(rule.reducer(category_transactions)),
                ))
        return buckets
