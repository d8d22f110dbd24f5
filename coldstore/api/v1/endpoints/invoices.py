"""
Invoice API Endpoints.

Generation runs the full billing pipeline for one account and period and
returns the finalized, persisted invoice.
"""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.core.exceptions import (
    AccountNotFoundError, InvalidBillingRequestError, InvoiceStateError, UsageSourceError
)
from coldstore.database import get_db
from coldstore.models.billing import InvoiceStatus
from coldstore.schemas.billing import (
    GenerateInvoice, InvoiceResponse, InvoiceSummaryResponse
)
from coldstore.services.billing_orchestrator import BillingOrchestrator
from coldstore.services.invoice_queries import InvoiceQueryService

router = APIRouter()


@router.post(
    "/generate",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate Invoice"
)
async def generate_invoice(
    data: GenerateInvoice,
    db: AsyncSession = Depends(get_db),
):
    """Generate and finalize the invoice for an account and billing period."""
    orchestrator = BillingOrchestrator(db)
    try:
        return await orchestrator.generate_invoice(
            account_id=data.account_id,
            period_start=data.period_start,
            period_end=data.period_end,
            as_of=data.as_of
        )
    except AccountNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except InvalidBillingRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except InvoiceStateError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    except UsageSourceError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )


@router.get(
    "",
    response_model=List[InvoiceSummaryResponse],
    summary="List Invoices"
)
async def list_invoices(
    account_id: Optional[UUID] = None,
    status: Optional[InvoiceStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List invoices."""
    service = InvoiceQueryService(db)
    invoices, _ = await service.list_invoices(
        account_id=account_id,
        status=status,
        skip=skip,
        limit=limit
    )
    return invoices


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get Invoice"
)
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get invoice details with lines."""
    service = InvoiceQueryService(db)
    invoice = await service.get_invoice(invoice_id)
    if not invoice:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invoice not found"
        )
    return invoice
