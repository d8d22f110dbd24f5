from fastapi import APIRouter

from coldstore.api.v1.endpoints import (
    rates,
    invoices,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Rate Catalogue ====================
api_router.include_router(
    rates.router,
    prefix="/rates",
    tags=["Rates"]
)

# ==================== Invoices ====================
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices"]
)
