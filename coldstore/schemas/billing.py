"""
Billing Schemas.

Pydantic schemas for the rate catalogue and invoice endpoints.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from coldstore.models.billing import ServiceCategory, RateUom, InvoiceStatus, as_utc, normalize_tier


# ============================================================================
# RATE SCHEMAS
# ============================================================================

class RateBase(BaseModel):
    """Base schema for a rate."""
    account_id: Optional[UUID] = Field(None, description="NULL for a global/default rate")
    category: ServiceCategory
    uom: RateUom
    tier: Optional[str] = Field(None, max_length=50)
    unit_price: Decimal = Field(..., ge=0, max_digits=18, decimal_places=6)
    effective_start: datetime
    effective_end: Optional[datetime] = None

    @field_validator('tier')
    @classmethod
    def blank_tier_is_none(cls, v: Optional[str]) -> Optional[str]:
        return normalize_tier(v)

    @field_validator('effective_start', 'effective_end')
    @classmethod
    def naive_is_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v

    @model_validator(mode='after')
    def check_window(self):
        if self.effective_end is not None and self.effective_end <= self.effective_start:
            raise ValueError("effective_end must be after effective_start")
        return self


class RateCreate(RateBase):
    """Schema for creating a rate."""
    pass


class RateUpdate(RateBase):
    """
    Schema for publishing a new version of a rate.

    The existing row is deactivated and a new row is inserted.
    """
    pass


class RateResponse(BaseModel):
    """Schema for rate response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: Optional[UUID]
    category: ServiceCategory
    uom: RateUom
    tier: Optional[str]
    unit_price: Decimal
    effective_start: datetime
    effective_end: Optional[datetime]
    is_active: bool
    replaces_rate_id: Optional[UUID]
    created_at: datetime
    deactivated_at: Optional[datetime]


class RateListResponse(BaseModel):
    items: List[RateResponse]
    total: int
    skip: int
    limit: int


# ============================================================================
# INVOICE SCHEMAS
# ============================================================================

class InvoiceLineResponse(BaseModel):
    """Schema for invoice line response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    line_number: int
    category: ServiceCategory
    uom: RateUom
    tier: Optional[str]
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


class InvoiceSummaryResponse(BaseModel):
    """Schema for invoice list entries."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    account_id: UUID
    status: InvoiceStatus
    period_start: date
    period_end: date
    due_date: date
    total_amount: Decimal
    created_at: datetime
    finalized_at: Optional[datetime]


class InvoiceResponse(InvoiceSummaryResponse):
    """Schema for invoice detail response."""
    rates_as_of: datetime
    lines: List[InvoiceLineResponse] = []


class GenerateInvoice(BaseModel):
    """Schema for generating an invoice. The period is checked by the orchestrator."""
    account_id: UUID
    period_start: date
    period_end: date = Field(..., description="Exclusive")
    as_of: Optional[datetime] = Field(
        None,
        description="Instant rates are resolved against; defaults to the run start"
    )
