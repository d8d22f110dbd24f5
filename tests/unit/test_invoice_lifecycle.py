"""Unit tests for the invoice lifecycle and line arithmetic."""

import re
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from coldstore.core.exceptions import InvoiceStateError
from coldstore.core.money import format_quantity, line_amount, to_quantity
from coldstore.models.billing import Invoice, InvoiceStatus, RateUom, ServiceCategory, as_utc
from coldstore.services.charge_resolver import Charge
from coldstore.services.invoice_builder import InvoiceBuilder
from coldstore.services.invoice_state_machine import (
    can_add_lines, can_transition, get_allowed_transitions, is_terminal
)

ACCOUNT = uuid.uuid4()


def draft():
    return Invoice.create(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1))


def add_storage_line(invoice, quantity="10000", price="0.05"):
    return invoice.add_line(
        ServiceCategory.STORAGE, RateUom.KG, Decimal(quantity), Decimal(price),
        "FrozenStorage Storage for 10000.00 kg-days.", tier="FrozenStorage",
    )


@pytest.mark.unit
class TestInvoiceCreate:

    def test_new_invoice_is_empty_draft(self):
        invoice = draft()
        assert invoice.status == InvoiceStatus.DRAFT.value
        assert invoice.lines == []
        assert invoice.total_amount == Decimal("0.00")
        assert invoice.finalized_at is None

    def test_invoice_number_format(self):
        invoice = Invoice.create(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1), number_prefix="CS")
        assert re.fullmatch(r"CS-\d{8}-[0-9A-F]{8}", invoice.invoice_number)

    def test_due_date_after_grace_period(self):
        invoice = Invoice.create(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1), grace_period_days=15)
        assert (invoice.due_date - invoice.created_at.date()).days == 15

    def test_rates_as_of_recorded(self):
        as_of = datetime(2025, 7, 1, tzinfo=timezone.utc)
        invoice = Invoice.create(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1), rates_as_of=as_of)
        assert invoice.rates_as_of == as_of


@pytest.mark.unit
class TestInvoiceLines:

    def test_lines_numbered_in_insertion_order(self):
        invoice = draft()
        first = add_storage_line(invoice)
        second = invoice.add_line(
            ServiceCategory.FUMIGATION, RateUom.CYCLE, Decimal("3"), Decimal("150"),
            "Fumigation/Quarantine service (3 cycle(s))."
        )
        assert [first.line_number, second.line_number] == [1, 2]
        assert invoice.lines == [first, second]

    def test_line_amount_is_quantity_times_price(self):
        line = add_storage_line(draft())
        assert line.amount == Decimal("500.00")
        assert line.unit_price == Decimal("0.050000")

    def test_amount_rounded_half_up_once(self):
        # 3.333333 x 1.5 = 4.9999995
        line = add_storage_line(draft(), quantity="3.333333", price="1.5")
        assert line.amount == Decimal("5.00")

    def test_draft_total_tracks_lines(self):
        invoice = draft()
        invoice.add_line(
            ServiceCategory.FUMIGATION, RateUom.CYCLE, Decimal("3"), Decimal("150"),
            "Fumigation/Quarantine service (3 cycle(s))."
        )
        assert invoice.status == InvoiceStatus.DRAFT.value
        assert invoice.total_amount == Decimal("450.00")

        add_storage_line(invoice)
        assert invoice.total_amount == Decimal("950.00")

    def test_quantity_kept_at_six_places(self):
        line = add_storage_line(draft(), quantity="1.23456789", price="1")
        assert line.quantity == Decimal("1.234568")


@pytest.mark.unit
class TestFinalize:

    def test_total_is_sum_of_line_amounts(self):
        invoice = draft()
        add_storage_line(invoice, quantity="3.333333", price="1.5")
        add_storage_line(invoice, quantity="1.004", price="1")
        total = invoice.finalize()

        assert total == Decimal("6.00")
        assert invoice.total_amount == sum(line.amount for line in invoice.lines)
        assert invoice.status == InvoiceStatus.FINALIZED.value
        assert invoice.finalized_at is not None

    def test_zero_lines_total_zero(self):
        invoice = draft()
        assert invoice.finalize() == Decimal("0.00")
        assert invoice.lines == []

    def test_finalize_twice_raises_and_keeps_total(self):
        invoice = draft()
        add_storage_line(invoice)
        invoice.finalize()
        finalized_at = invoice.finalized_at

        with pytest.raises(InvoiceStateError):
            invoice.finalize()

        assert invoice.total_amount == Decimal("500.00")
        assert invoice.finalized_at == finalized_at

    def test_add_line_after_finalize_raises(self):
        invoice = draft()
        invoice.finalize()

        with pytest.raises(InvoiceStateError):
            add_storage_line(invoice)

        assert invoice.lines == []


@pytest.mark.unit
class TestStateMachine:

    def test_transitions(self):
        assert can_transition("DRAFT", "FINALIZED")
        assert not can_transition("FINALIZED", "DRAFT")
        assert not can_transition("FINALIZED", "FINALIZED")
        assert get_allowed_transitions("FINALIZED") == []

    def test_status_helpers(self):
        assert can_add_lines("DRAFT")
        assert not can_add_lines("FINALIZED")
        assert is_terminal("FINALIZED")
        assert not is_terminal("DRAFT")


@pytest.mark.unit
class TestInvoiceBuilder:

    def charge(self):
        return Charge(
            category=ServiceCategory.FUMIGATION,
            uom=RateUom.CYCLE,
            tier=None,
            quantity=Decimal("3"),
            unit_price=Decimal("150"),
            description="Fumigation/Quarantine service (3 cycle(s)).",
        )

    def test_builds_finalized_invoice(self):
        builder = InvoiceBuilder(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1), number_prefix="INV")
        builder.add_charges([self.charge(), self.charge()])
        invoice = builder.finalize()

        assert invoice.is_finalized
        assert invoice.total_amount == Decimal("900.00")
        assert invoice.invoice_number.startswith("INV-")

    async def test_persist_requires_finalized(self):
        builder = InvoiceBuilder(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1))
        db = MagicMock()
        db.flush = AsyncMock()

        with pytest.raises(InvoiceStateError):
            await builder.persist(db)
        db.add.assert_not_called()

    async def test_persist_stages_invoice(self):
        builder = InvoiceBuilder(ACCOUNT, date(2025, 6, 1), date(2025, 7, 1))
        builder.finalize()
        db = MagicMock()
        db.flush = AsyncMock()

        invoice = await builder.persist(db)

        db.add.assert_called_once_with(invoice)
        db.flush.assert_awaited_once()


@pytest.mark.unit
class TestMoney:

    def test_line_amount_keeps_full_product_precision(self):
        quantity = to_quantity("999999999999.999999")
        assert line_amount(quantity, to_quantity("0.000001")) == Decimal("1000000.00")

    def test_format_quantity_strips_trailing_zeros(self):
        assert format_quantity(Decimal("40.000000")) == "40"
        assert format_quantity(Decimal("12.500000")) == "12.5"
        assert format_quantity(Decimal("1E+2")) == "100"


@pytest.mark.unit
class TestAsUtc:

    def test_naive_taken_as_utc(self):
        assert as_utc(datetime(2025, 6, 1, 8, 0)) == datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        singapore = timezone(timedelta(hours=8))
        converted = as_utc(datetime(2025, 6, 1, 8, 0, tzinfo=singapore))

        assert converted.utcoffset() == timedelta(0)
        assert converted.replace(tzinfo=None) == datetime(2025, 6, 1, 0, 0)
