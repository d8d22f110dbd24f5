"""End-to-end billing runs against SQLite read models."""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from coldstore.core.exceptions import AccountNotFoundError, DuplicateInvoiceError
from coldstore.jobs.billing_jobs import previous_month_period, run_monthly_billing_job
from coldstore.models.billing import Invoice, InvoiceLine, Rate, RateUom, ServiceCategory
from coldstore.models.operations import (
    Account, PickTransaction, ReceivingLine, StorageOccupancy, StorageZone,
    VasStatus, VasTransaction, VasTransactionLine, WithdrawalTransaction
)
from coldstore.services.billing_orchestrator import BillingOrchestrator
from coldstore.services.invoice_queries import InvoiceQueryService
from coldstore.services.usage_sources import SqlUsageSource

JUNE_START, JUNE_END = date(2025, 6, 1), date(2025, 7, 1)
RATES_FROM = datetime(2025, 1, 1, tzinfo=timezone.utc)
MATERIAL = uuid.uuid4()


def at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


def rate(account_id, category, uom, price, tier=None):
    return Rate(
        id=uuid.uuid4(),
        account_id=account_id,
        category=category.value,
        uom=uom.value,
        tier=tier,
        unit_price=Decimal(price),
        effective_start=RATES_FROM,
        is_active=True,
        created_at=RATES_FROM,
    )


async def seed_june(db, name="Polar Foods"):
    """Two frozen days of 5000 kg / 20 pallets, three fumigations, handling."""
    account = Account(id=uuid.uuid4(), name=name, is_active=True)
    db.add(account)

    for day in (date(2025, 6, 10), date(2025, 6, 11)):
        db.add(StorageOccupancy(
            account_id=account.id, snapshot_date=day, zone=StorageZone.FROZEN_STORAGE.value,
            pallet_count=20, weight_kg=Decimal("5000"),
        ))
    # outside the period
    db.add(StorageOccupancy(
        account_id=account.id, snapshot_date=JUNE_END, zone=StorageZone.FROZEN_STORAGE.value,
        pallet_count=20, weight_kg=Decimal("5000"),
    ))

    for status in (VasStatus.COMPLETED, VasStatus.COMPLETED, VasStatus.COMPLETED, VasStatus.PLANNED):
        db.add(VasTransaction(
            account_id=account.id, category=ServiceCategory.FUMIGATION.value,
            status=status.value, performed_at=at(date(2025, 6, 15)),
            lines=[VasTransactionLine(material_id=MATERIAL, quantity=Decimal("10"), weight_kg=Decimal("100"))],
        ))

    db.add(ReceivingLine(
        account_id=account.id, quantity=Decimal("10"), weight_kg=Decimal("2000"),
        received_at=at(date(2025, 6, 2)),
    ))
    db.add(ReceivingLine(
        account_id=account.id, quantity=Decimal("10"), weight_kg=Decimal("999"),
        received_at=at(date(2025, 5, 31), hour=23),
    ))
    db.add(PickTransaction(
        account_id=account.id, quantity=Decimal("12"), is_confirmed=True, picked_at=at(date(2025, 6, 20)),
    ))
    db.add(PickTransaction(
        account_id=account.id, quantity=Decimal("50"), is_confirmed=False, picked_at=at(date(2025, 6, 20)),
    ))
    db.add(WithdrawalTransaction(
        account_id=account.id, total_weight_kg=Decimal("300"), shipped_at=at(date(2025, 6, 30), hour=23),
    ))

    db.add_all([
        rate(account.id, ServiceCategory.STORAGE, RateUom.KG, "0.05", tier="FrozenStorage"),
        rate(account.id, ServiceCategory.STORAGE, RateUom.PALLET, "2.00", tier="FrozenStorage"),
        rate(account.id, ServiceCategory.FUMIGATION, RateUom.CYCLE, "150"),
    ])
    await db.commit()
    return account


@pytest.mark.integration
class TestSqlUsageSource:

    async def test_storage_sums_daily_snapshots_in_period(self, db_session):
        account = await seed_june(db_session)
        source = SqlUsageSource(db_session)

        weights = await source.get_daily_weight_by_zone(account.id, JUNE_START, JUNE_END)
        pallets = await source.get_daily_pallet_count_by_zone(account.id, JUNE_START, JUNE_END)

        assert weights == {StorageZone.FROZEN_STORAGE: Decimal("10000")}
        assert pallets == {StorageZone.FROZEN_STORAGE: 40}

    async def test_unknown_zone_skipped(self, db_session):
        account = await seed_june(db_session)
        db_session.add(StorageOccupancy(
            account_id=account.id, snapshot_date=date(2025, 6, 12), zone="BLAST_CELL",
            pallet_count=5, weight_kg=Decimal("800"),
        ))
        await db_session.commit()
        source = SqlUsageSource(db_session)

        weights = await source.get_daily_weight_by_zone(account.id, JUNE_START, JUNE_END)
        pallets = await source.get_daily_pallet_count_by_zone(account.id, JUNE_START, JUNE_END)

        assert weights == {StorageZone.FROZEN_STORAGE: Decimal("10000")}
        assert pallets == {StorageZone.FROZEN_STORAGE: 40}

    async def test_only_billable_transactions(self, db_session):
        account = await seed_june(db_session)
        source = SqlUsageSource(db_session)

        receiving = await source.get_receiving_for_account(account.id, JUNE_START, JUNE_END)
        picks = await source.get_picks_for_account(account.id, JUNE_START, JUNE_END)
        withdrawals = await source.get_withdrawals_for_account(account.id, JUNE_START, JUNE_END)
        vas = await source.get_vas_for_account(account.id, JUNE_START, JUNE_END)

        assert [r.weight_kg for r in receiving] == [Decimal("2000")]
        assert [p.quantity for p in picks] == [Decimal("12")]
        assert [w.total_weight_kg for w in withdrawals] == [Decimal("300")]
        assert len(vas) == 3
        assert all(tx.category == ServiceCategory.FUMIGATION for tx in vas)
        assert all(len(tx.input_lines) == 1 and tx.output_lines == () for tx in vas)

    async def test_account_exists(self, db_session):
        account = await seed_june(db_session)
        source = SqlUsageSource(db_session)

        assert await source.account_exists(account.id)
        assert not await source.account_exists(uuid.uuid4())


@pytest.mark.integration
class TestGenerateInvoice:

    async def test_generates_and_persists(self, db_session):
        account = await seed_june(db_session)

        invoice = await BillingOrchestrator(db_session).generate_invoice(account.id, JUNE_START, JUNE_END)

        assert invoice.total_amount == Decimal("950.00")
        stored = await InvoiceQueryService(db_session).get_invoice(invoice.id)
        assert stored.status == "FINALIZED"
        assert [line.description for line in stored.lines] == [
            "FrozenStorage Storage for 10000.00 kg-days.",
            "Fumigation/Quarantine service (3 cycle(s)).",
        ]
        assert sum(line.amount for line in stored.lines) == stored.total_amount

    async def test_unknown_zone_does_not_abort_run(self, db_session):
        account = await seed_june(db_session)
        db_session.add(StorageOccupancy(
            account_id=account.id, snapshot_date=date(2025, 6, 12), zone="BLAST_CELL",
            pallet_count=5, weight_kg=Decimal("800"),
        ))
        await db_session.commit()

        invoice = await BillingOrchestrator(db_session).generate_invoice(account.id, JUNE_START, JUNE_END)

        assert invoice.total_amount == Decimal("950.00")
        assert len(invoice.lines) == 2

    async def test_second_run_is_duplicate(self, db_session):
        account = await seed_june(db_session)
        orchestrator = BillingOrchestrator(db_session)
        await orchestrator.generate_invoice(account.id, JUNE_START, JUNE_END)

        with pytest.raises(DuplicateInvoiceError):
            await orchestrator.generate_invoice(account.id, JUNE_START, JUNE_END)

        count = await db_session.scalar(select(func.count(Invoice.id)))
        assert count == 1

    async def test_unknown_account_persists_nothing(self, db_session):
        with pytest.raises(AccountNotFoundError):
            await BillingOrchestrator(db_session).generate_invoice(uuid.uuid4(), JUNE_START, JUNE_END)

        assert await db_session.scalar(select(func.count(Invoice.id))) == 0
        assert await db_session.scalar(select(func.count(InvoiceLine.id))) == 0

    async def test_rate_change_after_run_keeps_invoice(self, db_session):
        account = await seed_june(db_session)
        invoice = await BillingOrchestrator(db_session).generate_invoice(account.id, JUNE_START, JUNE_END)

        result = await db_session.execute(select(Rate).where(Rate.account_id == account.id))
        for stored_rate in result.scalars().all():
            stored_rate.deactivate()
        await db_session.commit()

        stored = await InvoiceQueryService(db_session).get_invoice(invoice.id)
        assert stored.total_amount == Decimal("950.00")
        assert stored.lines[0].unit_price == Decimal("0.05")

    async def test_list_invoices(self, db_session):
        account = await seed_june(db_session)
        orchestrator = BillingOrchestrator(db_session)
        await orchestrator.generate_invoice(account.id, JUNE_START, JUNE_END)
        await orchestrator.generate_invoice(account.id, date(2025, 5, 1), JUNE_START)

        invoices, total = await InvoiceQueryService(db_session).list_invoices(account_id=account.id)

        assert total == 2
        assert [i.period_start for i in invoices] == [JUNE_START, date(2025, 5, 1)]
        may = invoices[1]
        assert may.total_amount == Decimal("0.00")


@pytest.mark.integration
class TestMonthlyBillingJob:

    def test_previous_month_period(self):
        assert previous_month_period(date(2025, 7, 1)) == (JUNE_START, JUNE_END)
        assert previous_month_period(date(2025, 1, 15)) == (date(2024, 12, 1), date(2025, 1, 1))

    async def test_bills_active_accounts_and_skips_existing(self, db_session):
        first = await seed_june(db_session, name="Arctic Seafood")
        second = await seed_june(db_session, name="Boreal Dairy")
        first_id, second_id = str(first.id), str(second.id)
        dormant = Account(id=uuid.uuid4(), name="Closed Co", is_active=False)
        db_session.add(dormant)
        await db_session.commit()
        await BillingOrchestrator(db_session).generate_invoice(second.id, JUNE_START, JUNE_END)

        summary = await run_monthly_billing_job(db_session, today=date(2025, 7, 1))

        assert summary["accounts"] == 2
        assert [g["account_id"] for g in summary["generated"]] == [first_id]
        assert summary["generated"][0]["total_amount"] == "950.00"
        assert summary["skipped"] == [second_id]
        assert summary["errors"] == []


def test_period_helper_handles_leap_february():
    start, end = previous_month_period(date(2024, 3, 1))
    assert (end - start) == timedelta(days=29)
