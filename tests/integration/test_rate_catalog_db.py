"""Integration tests for the rate catalogue against SQLite."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from coldstore.core.exceptions import RateConflictError, RateNotFoundError
from coldstore.models.billing import RateUom, ServiceCategory
from coldstore.schemas.billing import RateCreate, RateUpdate
from coldstore.services.rate_catalog import RateCatalog

ACCOUNT = uuid.uuid4()
JAN = datetime(2025, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2025, 2, 1, tzinfo=timezone.utc)
MAR = datetime(2025, 3, 1, tzinfo=timezone.utc)


def storage_rate(price="0.05", start=JAN, end=None, tier="FrozenStorage", account_id=ACCOUNT):
    return RateCreate(
        account_id=account_id,
        category=ServiceCategory.STORAGE,
        uom=RateUom.KG,
        tier=tier,
        unit_price=Decimal(price),
        effective_start=start,
        effective_end=end,
    )


@pytest.mark.integration
class TestResolve:

    async def test_resolve_in_window(self, db_session):
        catalog = RateCatalog(db_session)
        created = await catalog.create_rate(storage_rate(start=JAN, end=FEB))

        at_start = await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=JAN)
        at_end = await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=FEB)

        assert at_start.id == created.id
        assert at_end is None

    async def test_offset_instants_compared_in_utc(self, db_session):
        catalog = RateCatalog(db_session)
        singapore = timezone(timedelta(hours=8))
        # 08:00 +08:00 is midnight UTC
        await catalog.create_rate(storage_rate(start=datetime(2025, 1, 1, 8, tzinfo=singapore)))

        just_before = datetime(2025, 1, 1, 7, 59, tzinfo=singapore)
        at_start = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)

        assert await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=just_before) is None
        assert await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=at_start) is not None

    async def test_resolve_prefers_exact_tier(self, db_session):
        catalog = RateCatalog(db_session)
        await catalog.create_rate(storage_rate(price="0.04", tier=None))
        frozen = await catalog.create_rate(storage_rate(price="0.05"))

        rate = await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=FEB)
        generic = await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "Chilling", as_of=FEB)

        assert rate.id == frozen.id
        assert generic.unit_price == Decimal("0.04")

    async def test_resolve_stays_in_account_scope(self, db_session):
        catalog = RateCatalog(db_session)
        await catalog.create_rate(storage_rate(account_id=None))
        await catalog.create_rate(storage_rate(account_id=uuid.uuid4()))

        assert await catalog.resolve(ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=FEB) is None
        assert await catalog.resolve(None, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=FEB) is not None


@pytest.mark.integration
class TestMaintenance:

    async def test_overlapping_create_rejected(self, db_session):
        catalog = RateCatalog(db_session)
        await catalog.create_rate(storage_rate(start=JAN))

        with pytest.raises(RateConflictError):
            await catalog.create_rate(storage_rate(start=FEB, end=MAR))

    async def test_adjacent_and_other_tier_allowed(self, db_session):
        catalog = RateCatalog(db_session)
        await catalog.create_rate(storage_rate(start=JAN, end=FEB))
        await catalog.create_rate(storage_rate(start=FEB))
        await catalog.create_rate(storage_rate(start=JAN, tier="Chilling"))

        rates, total = await catalog.list_rates(account_id=ACCOUNT)
        assert total == 3
        assert len(rates) == 3

    async def test_update_deactivates_and_inserts(self, db_session):
        catalog = RateCatalog(db_session)
        original = await catalog.create_rate(storage_rate(price="0.05", start=JAN))

        replacement = await catalog.update_rate(
            original.id,
            RateUpdate(**storage_rate(price="0.06", start=FEB).model_dump()),
        )

        old = await catalog.get_rate(original.id)
        assert old.is_active is False
        assert old.deactivated_at is not None
        assert old.unit_price == Decimal("0.05")
        assert replacement.id != original.id
        assert replacement.replaces_rate_id == original.id

        current = await catalog.resolve(
            ACCOUNT, ServiceCategory.STORAGE, RateUom.KG, "FrozenStorage", as_of=MAR
        )
        assert current.id == replacement.id
        assert current.unit_price == Decimal("0.06")

    async def test_update_superseded_rate_rejected(self, db_session):
        catalog = RateCatalog(db_session)
        original = await catalog.create_rate(storage_rate())
        await catalog.update_rate(original.id, RateUpdate(**storage_rate(price="0.06").model_dump()))

        with pytest.raises(RateConflictError):
            await catalog.update_rate(original.id, RateUpdate(**storage_rate(price="0.07").model_dump()))

    async def test_update_unknown_rate(self, db_session):
        with pytest.raises(RateNotFoundError):
            await RateCatalog(db_session).update_rate(
                uuid.uuid4(), RateUpdate(**storage_rate().model_dump())
            )

    async def test_deactivate_hides_from_active_list(self, db_session):
        catalog = RateCatalog(db_session)
        rate = await catalog.create_rate(storage_rate())

        await catalog.deactivate_rate(rate.id)

        active, _ = await catalog.list_rates(account_id=ACCOUNT)
        everything, _ = await catalog.list_rates(account_id=ACCOUNT, active_only=False)
        assert active == []
        assert [r.id for r in everything] == [rate.id]

    async def test_list_filters(self, db_session):
        catalog = RateCatalog(db_session)
        await catalog.create_rate(storage_rate(account_id=None))
        await catalog.create_rate(storage_rate())
        await catalog.create_rate(RateCreate(
            account_id=ACCOUNT,
            category=ServiceCategory.FUMIGATION,
            uom=RateUom.CYCLE,
            unit_price=Decimal("150"),
            effective_start=JAN,
        ))

        global_rates, global_total = await catalog.list_rates(global_only=True)
        fumigation, _ = await catalog.list_rates(account_id=ACCOUNT, category=ServiceCategory.FUMIGATION)
        page, total = await catalog.list_rates(account_id=ACCOUNT, limit=1)

        assert global_total == 1 and global_rates[0].account_id is None
        assert [r.category for r in fumigation] == ["FUMIGATION"]
        assert total == 2 and len(page) == 1
