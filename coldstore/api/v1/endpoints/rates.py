"""
Rate Catalogue API Endpoints.

Rates are versioned: PUT publishes a new version and DELETE deactivates,
neither edits a row in place.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.core.exceptions import RateConflictError, RateNotFoundError
from coldstore.database import get_db
from coldstore.models.billing import RateUom, ServiceCategory
from coldstore.schemas.billing import (
    RateCreate, RateUpdate, RateResponse, RateListResponse
)
from coldstore.services.rate_catalog import RateCatalog

router = APIRouter()


@router.post(
    "",
    response_model=RateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Rate"
)
async def create_rate(
    data: RateCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a rate. Overlapping an active rate for the same key is rejected."""
    catalog = RateCatalog(db)
    try:
        return await catalog.create_rate(data)
    except RateConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )


@router.get(
    "",
    response_model=RateListResponse,
    summary="List Rates"
)
async def list_rates(
    account_id: Optional[UUID] = None,
    global_only: bool = False,
    category: Optional[ServiceCategory] = None,
    active_only: bool = True,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List rates."""
    catalog = RateCatalog(db)
    rates, total = await catalog.list_rates(
        account_id=account_id,
        global_only=global_only,
        category=category,
        active_only=active_only,
        skip=skip,
        limit=limit
    )
    return RateListResponse(
        items=[RateResponse.model_validate(r) for r in rates],
        total=total,
        skip=skip,
        limit=limit
    )


@router.get(
    "/resolve",
    response_model=RateResponse,
    summary="Resolve Applicable Rate"
)
async def resolve_rate(
    category: ServiceCategory,
    uom: RateUom,
    account_id: Optional[UUID] = Query(None, description="Omit to resolve among global rates"),
    tier: Optional[str] = None,
    as_of: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
):
    """Point-in-time lookup for one account scope."""
    catalog = RateCatalog(db)
    rate = await catalog.resolve(account_id, category, uom, tier, as_of=as_of)
    if not rate:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No applicable rate"
        )
    return rate


@router.get(
    "/{rate_id}",
    response_model=RateResponse,
    summary="Get Rate"
)
async def get_rate(
    rate_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get rate details."""
    catalog = RateCatalog(db)
    rate = await catalog.get_rate(rate_id)
    if not rate:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Rate not found"
        )
    return rate


@router.put(
    "/{rate_id}",
    response_model=RateResponse,
    summary="Publish New Rate Version"
)
async def update_rate(
    rate_id: UUID,
    data: RateUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate the rate and insert its replacement."""
    catalog = RateCatalog(db)
    try:
        return await catalog.update_rate(rate_id, data)
    except RateNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except RateConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )


@router.delete(
    "/{rate_id}",
    response_model=RateResponse,
    summary="Deactivate Rate"
)
async def deactivate_rate(
    rate_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a rate. The row is kept for historical runs."""
    catalog = RateCatalog(db)
    try:
        return await catalog.deactivate_rate(rate_id)
    except RateNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
