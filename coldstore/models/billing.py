"""
Billing Models - rate catalogue and invoices.

This module implements the priced side of warehouse billing:
- Rate: versioned price rule per (account, category, uom, tier, window)
- Invoice: one account's bill for one period, DRAFT until finalized
- InvoiceLine: a priced charge; holds a copy of the unit price, not the Rate
"""
import uuid
from datetime import datetime, timezone, date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Date, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore.core.money import ZERO_MONEY, line_amount, sum_money, to_quantity
from coldstore.database import Base
from coldstore.db_types import UUIDType, QuantityType, MoneyType


# ============================================================================
# ENUMS
# ============================================================================

class ServiceCategory(str, Enum):
    """Billable service categories."""
    STORAGE = "STORAGE"
    HANDLING = "HANDLING"
    BLASTING = "BLASTING"               # Blast freezing
    REPACK = "REPACK"
    SPLIT = "SPLIT"
    LABELING = "LABELING"
    FUMIGATION = "FUMIGATION"
    CYCLE_COUNT = "CYCLE_COUNT"
    CROSS_DOCK = "CROSS_DOCK"
    SURCHARGE = "SURCHARGE"
    KITTING = "KITTING"


class RateUom(str, Enum):
    """Billing denomination a rate is expressed in."""
    PALLET = "PALLET"
    KG = "KG"
    DAY = "DAY"
    CYCLE = "CYCLE"
    EACH = "EACH"
    HOUR = "HOUR"
    SHIPMENT = "SHIPMENT"
    PERCENT = "PERCENT"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""
    DRAFT = "DRAFT"
    FINALIZED = "FINALIZED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalise to UTC; naive values are taken as UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_tier(tier: Optional[str]) -> Optional[str]:
    if tier is None:
        return None
    tier = tier.strip()
    return tier or None


# ============================================================================
# MODELS
# ============================================================================

class Rate(Base):
    """
    Price rule in the rate catalogue.

    Rows are never edited in place: a new version deactivates the previous
    row and inserts a replacement, so past invoice runs stay reproducible.
    """
    __tablename__ = "billing_rates"
    __table_args__ = (
        Index('ix_billing_rates_lookup', 'account_id', 'category', 'uom', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Scope (NULL = global/default rate)
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True,
        index=True
    )

    # Rule Key
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False)
    tier: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Free-text refinement, e.g. FrozenStorage or Expedited"
    )

    # Price
    unit_price: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    # Effective window [start, end)
    effective_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    replaces_rate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True,
        comment="Previous version this row superseded"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow
    )
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    def is_effective_at(self, as_of: datetime) -> bool:
        """Start inclusive, end exclusive, open-ended when end is NULL."""
        if not self.is_active:
            return False
        as_of = as_utc(as_of)
        if as_utc(self.effective_start) > as_of:
            return False
        return self.effective_end is None or as_of < as_utc(self.effective_end)

    def deactivate(self, when: Optional[datetime] = None) -> None:
        when = when or _utcnow()
        self.is_active = False
        self.deactivated_at = when
        if self.effective_end is None or as_utc(self.effective_end) > as_utc(when):
            self.effective_end = when

    def __repr__(self) -> str:
        return (
            f"<Rate {self.category}/{self.uom} tier={self.tier!r} "
            f"account={self.account_id} price={self.unit_price}>"
        )


class Invoice(Base):
    """
    Invoice for one account and one billing period.

    Created DRAFT with no lines; lines are appended while DRAFT; finalize()
    freezes total_amount and moves the invoice to FINALIZED.
    """
    __tablename__ = "billing_invoices"
    __table_args__ = (
        UniqueConstraint('account_id', 'period_start', 'period_end', name='uq_billing_invoice_period'),
        Index('ix_billing_invoices_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Invoice Identity
    invoice_number: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(30),
        default=InvoiceStatus.DRAFT.value,
        nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )

    # Billing Period [start, end)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Rates were resolved against this instant for every line
    rates_as_of: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=ZERO_MONEY)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Relationships
    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_number"
    )

    @classmethod
    def create(
        cls,
        account_id: uuid.UUID,
        period_start: date,
        period_end: date,
        rates_as_of: Optional[datetime] = None,
        number_prefix: str = "INV",
        grace_period_days: int = 30,
    ) -> "Invoice":
        """Construct a DRAFT invoice with zero lines."""
        now = _utcnow()
        invoice_id = uuid.uuid4()
        return cls(
            id=invoice_id,
            invoice_number=f"{number_prefix}-{now:%Y%m%d}-{invoice_id.hex[:8].upper()}",
            status=InvoiceStatus.DRAFT.value,
            account_id=account_id,
            period_start=period_start,
            period_end=period_end,
            due_date=now.date() + timedelta(days=grace_period_days),
            rates_as_of=rates_as_of or now,
            total_amount=ZERO_MONEY,
            created_at=now,
            lines=[],
        )

    @property
    def is_finalized(self) -> bool:
        return self.status == InvoiceStatus.FINALIZED.value

    def add_line(
        self,
        category: ServiceCategory,
        uom: RateUom,
        quantity: Decimal,
        unit_price: Decimal,
        description: str,
        tier: Optional[str] = None,
    ) -> "InvoiceLine":
        """Append a priced line; only allowed while DRAFT."""
        from coldstore.services.invoice_state_machine import ensure_can_add_lines

        ensure_can_add_lines(self.status)
        line = InvoiceLine.create(
            line_number=len(self.lines) + 1,
            category=category,
            uom=uom,
            quantity=quantity,
            unit_price=unit_price,
            description=description,
            tier=tier,
        )
        self.lines.append(line)
        self.total_amount = sum_money(item.amount for item in self.lines)
        return line

    def finalize(self) -> Decimal:
        """Move to FINALIZED and freeze the total. A second call raises."""
        from coldstore.services.invoice_state_machine import transition_invoice

        transition_invoice(self, InvoiceStatus.FINALIZED.value)
        self.total_amount = sum_money(line.amount for line in self.lines)
        return self.total_amount

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status} total={self.total_amount}>"


class InvoiceLine(Base):
    """
    Line item on an invoice.
    """
    __tablename__ = "billing_invoice_lines"
    __table_args__ = (
        UniqueConstraint('invoice_id', 'line_number', name='uq_billing_invoice_line_number'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Invoice Reference
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("billing_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Item Details
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False)
    tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Relationships
    invoice: Mapped["Invoice"] = relationship(
        "Invoice",
        back_populates="lines"
    )

    @classmethod
    def create(
        cls,
        line_number: int,
        category: ServiceCategory,
        uom: RateUom,
        quantity: Decimal,
        unit_price: Decimal,
        description: str,
        tier: Optional[str] = None,
    ) -> "InvoiceLine":
        quantity = to_quantity(quantity)
        unit_price = to_quantity(unit_price)
        return cls(
            id=uuid.uuid4(),
            line_number=line_number,
            category=ServiceCategory(category).value,
            uom=RateUom(uom).value,
            tier=normalize_tier(tier),
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=line_amount(quantity, unit_price),
        )

    def __repr__(self) -> str:
        return f"<InvoiceLine #{self.line_number} {self.category} {self.quantity} x {self.unit_price}>"
