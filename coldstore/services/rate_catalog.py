"""
Rate Catalog - versioned price rules and point-in-time lookup.

Resolution stays inside the account scope passed by the caller: a rate for
the exact tier wins over a tier-less rate for the same account, and rates
belonging to other accounts (or global rows) are never consulted unless the
caller asks for account_id=None explicitly.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.core.exceptions import RateConflictError, RateNotFoundError
from coldstore.models.billing import (
    Rate, RateUom, ServiceCategory, as_utc, normalize_tier
)
from coldstore.schemas.billing import RateCreate, RateUpdate


logger = logging.getLogger(__name__)


def select_rate(
    candidates: Iterable[Rate],
    tier: Optional[str],
    as_of: datetime,
) -> Optional[Rate]:
    """
    Pick the applicable rate among candidates sharing account/category/uom.

    Exact tier match first, then tier-less rates. Only active rates whose
    window contains as_of qualify. If overlapping windows were configured,
    the most recently started (then most recently created) rate wins.
    """
    tier = normalize_tier(tier)
    effective = [rate for rate in candidates if rate.is_effective_at(as_of)]

    def newest(rates: List[Rate]) -> Optional[Rate]:
        if not rates:
            return None
        return max(
            rates,
            key=lambda r: (as_utc(r.effective_start), as_utc(r.created_at) if r.created_at else as_of)
        )

    if tier is not None:
        exact = newest([rate for rate in effective if normalize_tier(rate.tier) == tier])
        if exact is not None:
            return exact
    return newest([rate for rate in effective if normalize_tier(rate.tier) is None])


def windows_overlap(
    start_a: datetime,
    end_a: Optional[datetime],
    start_b: datetime,
    end_b: Optional[datetime],
) -> bool:
    """Half-open [start, end) windows; None means open-ended."""
    start_a, start_b = as_utc(start_a), as_utc(start_b)
    a_before_b_ends = end_b is None or start_a < as_utc(end_b)
    b_before_a_ends = end_a is None or start_b < as_utc(end_a)
    return a_before_b_ends and b_before_a_ends


class RateCatalog:
    """Service for rate catalogue lookups and versioned maintenance."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def _scope_filter(self, account_id: Optional[uuid.UUID]):
        if account_id is None:
            return Rate.account_id.is_(None)
        return Rate.account_id == account_id

    async def resolve(
        self,
        account_id: Optional[uuid.UUID],
        category: ServiceCategory,
        uom: RateUom,
        tier: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> Optional[Rate]:
        """Point-in-time lookup. Returns None when nothing applies."""
        as_of = as_utc(as_of) if as_of else datetime.now(timezone.utc)
        tier = normalize_tier(tier)

        tier_filter = Rate.tier.is_(None)
        if tier is not None:
            tier_filter = or_(Rate.tier == tier, Rate.tier.is_(None))

        query = select(Rate).where(
            and_(
                self._scope_filter(account_id),
                Rate.category == ServiceCategory(category).value,
                Rate.uom == RateUom(uom).value,
                Rate.is_active == True,  # noqa: E712
                Rate.effective_start <= as_of,
                or_(Rate.effective_end.is_(None), Rate.effective_end > as_of),
                tier_filter,
            )
        )
        result = await self.db.execute(query)
        rate = select_rate(result.scalars().all(), tier, as_of)

        if rate is None:
            logger.debug(
                "No rate for account=%s %s/%s tier=%s as of %s",
                account_id, category, uom, tier, as_of.isoformat()
            )
        return rate

    async def get_rate(self, rate_id: uuid.UUID) -> Optional[Rate]:
        """Get rate by ID."""
        result = await self.db.execute(select(Rate).where(Rate.id == rate_id))
        return result.scalar_one_or_none()

    async def list_rates(
        self,
        account_id: Optional[uuid.UUID] = None,
        global_only: bool = False,
        category: Optional[ServiceCategory] = None,
        active_only: bool = True,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Rate], int]:
        """List rates with filters."""
        query = select(Rate)

        if global_only:
            query = query.where(Rate.account_id.is_(None))
        elif account_id:
            query = query.where(Rate.account_id == account_id)
        if category:
            query = query.where(Rate.category == ServiceCategory(category).value)
        if active_only:
            query = query.where(Rate.is_active == True)  # noqa: E712

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query) or 0

        query = query.order_by(
            Rate.category, Rate.uom, Rate.tier, Rate.effective_start.desc()
        ).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def _find_overlapping(
        self,
        account_id: Optional[uuid.UUID],
        category: ServiceCategory,
        uom: RateUom,
        tier: Optional[str],
        effective_start: datetime,
        effective_end: Optional[datetime],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Rate]:
        tier_filter = Rate.tier.is_(None) if tier is None else Rate.tier == tier
        query = select(Rate).where(
            and_(
                self._scope_filter(account_id),
                Rate.category == ServiceCategory(category).value,
                Rate.uom == RateUom(uom).value,
                tier_filter,
                Rate.is_active == True,  # noqa: E712
            )
        )
        if exclude_id is not None:
            query = query.where(Rate.id != exclude_id)

        result = await self.db.execute(query)
        for existing in result.scalars().all():
            if windows_overlap(
                existing.effective_start, existing.effective_end,
                effective_start, effective_end
            ):
                return existing
        return None

    def _new_rate(self, data: RateCreate, replaces: Optional[uuid.UUID] = None) -> Rate:
        return Rate(
            id=uuid.uuid4(),
            account_id=data.account_id,
            category=data.category.value,
            uom=data.uom.value,
            tier=normalize_tier(data.tier),
            unit_price=data.unit_price,
            effective_start=as_utc(data.effective_start),
            effective_end=as_utc(data.effective_end) if data.effective_end else None,
            is_active=True,
            replaces_rate_id=replaces,
            created_at=datetime.now(timezone.utc),
        )

    async def create_rate(self, data: RateCreate) -> Rate:
        """Create a rate; rejects overlap with an active rate for the same key."""
        conflict = await self._find_overlapping(
            data.account_id, data.category, data.uom, data.tier,
            data.effective_start, data.effective_end
        )
        if conflict is not None:
            raise RateConflictError(
                f"Active rate {conflict.id} already covers part of this window for "
                f"{data.category.value}/{data.uom.value} tier={data.tier!r}"
            )

        rate = self._new_rate(data)
        self.db.add(rate)
        await self.db.commit()
        await self.db.refresh(rate)
        logger.info("Created rate %s: %r", rate.id, rate)
        return rate

    async def update_rate(self, rate_id: uuid.UUID, data: RateUpdate) -> Rate:
        """Publish a new version: deactivate the old row, insert a replacement."""
        existing = await self.get_rate(rate_id)
        if existing is None:
            raise RateNotFoundError(rate_id)
        if not existing.is_active:
            raise RateConflictError(f"Rate {rate_id} is inactive and has already been superseded")

        conflict = await self._find_overlapping(
            data.account_id, data.category, data.uom, data.tier,
            data.effective_start, data.effective_end,
            exclude_id=existing.id,
        )
        if conflict is not None:
            raise RateConflictError(
                f"Active rate {conflict.id} already covers part of this window for "
                f"{data.category.value}/{data.uom.value} tier={data.tier!r}"
            )

        now = datetime.now(timezone.utc)
        existing.deactivate(now)
        replacement = self._new_rate(data, replaces=existing.id)
        self.db.add(replacement)
        await self.db.commit()
        await self.db.refresh(replacement)
        logger.info("Rate %s superseded by %s", existing.id, replacement.id)
        return replacement

    async def deactivate_rate(self, rate_id: uuid.UUID) -> Rate:
        """Retire a rate. Rows are kept so historical runs stay explainable."""
        rate = await self.get_rate(rate_id)
        if rate is None:
            raise RateNotFoundError(rate_id)
        if rate.is_active:
            rate.deactivate()
            await self.db.commit()
            await self.db.refresh(rate)
            logger.info("Deactivated rate %s", rate.id)
        return rate
