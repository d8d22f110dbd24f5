"""
Operational Read Models - facts written by receiving, picking, shipping,
inventory and VAS subsystems.

Billing only reads these tables:
- Account: billable customer
- StorageOccupancy: daily pallet/weight snapshot per temperature zone
- ReceivingLine / PickTransaction / WithdrawalTransaction: handling volumes
- VasTransaction / VasTransactionLine: committed value-added service records
"""
import uuid
from datetime import datetime, timezone, date
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Date, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore.database import Base
from coldstore.db_types import UUIDType, QuantityType


# ============================================================================
# ENUMS
# ============================================================================

class StorageZone(str, Enum):
    """Temperature zone a pallet is stored in."""
    STAGING = "STAGING"
    CHILLING = "CHILLING"
    FROZEN_STORAGE = "FROZEN_STORAGE"
    COOL_STORAGE = "COOL_STORAGE"
    DEEP_FROZEN_STORAGE = "DEEP_FROZEN_STORAGE"
    ULT_STORAGE = "ULT_STORAGE"


class VasStatus(str, Enum):
    """VAS transaction status."""
    PLANNED = "PLANNED"
    COMPLETED = "COMPLETED"
    VOIDED = "VOIDED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# MODELS
# ============================================================================

class Account(Base):
    """Billable customer account."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow
    )


class StorageOccupancy(Base):
    """
    Daily occupancy snapshot per account and zone.

    One row per (account, day, zone); pallet-days and kg-days for a period are
    the sums of these rows.
    """
    __tablename__ = "storage_occupancy"
    __table_args__ = (
        UniqueConstraint('account_id', 'snapshot_date', 'zone', name='uq_storage_occupancy_day_zone'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    zone: Mapped[str] = mapped_column(String(30), nullable=False)
    pallet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weight_kg: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)


class ReceivingLine(Base):
    """Received pallet line (inbound handling)."""
    __tablename__ = "receiving_lines"
    __table_args__ = (
        Index('ix_receiving_lines_account_time', 'account_id', 'received_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    receiving_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    weight_kg: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PickTransaction(Base):
    """Pick of units from a pallet (picking handling)."""
    __tablename__ = "pick_transactions"
    __table_args__ = (
        Index('ix_pick_transactions_account_time', 'account_id', 'picked_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    is_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class WithdrawalTransaction(Base):
    """Outbound shipment (outbound handling)."""
    __tablename__ = "withdrawal_transactions"
    __table_args__ = (
        Index('ix_withdrawal_transactions_account_time', 'account_id', 'shipped_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    shipment_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total_weight_kg: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    shipped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class VasTransaction(Base):
    """
    Value-added service transaction.

    Input lines with a material id are physical goods processed; input lines
    without one are labor/service time or unit counts. Output lines are the
    produced goods (e.g. assembled kits).
    """
    __tablename__ = "vas_transactions"
    __table_args__ = (
        Index('ix_vas_transactions_account_time', 'account_id', 'performed_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=VasStatus.PLANNED.value,
        nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    lines: Mapped[List["VasTransactionLine"]] = relationship(
        "VasTransactionLine",
        back_populates="transaction",
        cascade="all, delete-orphan"
    )


class VasTransactionLine(Base):
    """Input or output line of a VAS transaction."""
    __tablename__ = "vas_transaction_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vas_transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    weight_kg: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=0)
    is_input: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    transaction: Mapped["VasTransaction"] = relationship(
        "VasTransaction",
        back_populates="lines"
    )
