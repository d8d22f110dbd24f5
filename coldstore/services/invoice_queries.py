"""Read side for persisted invoices."""
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coldstore.models.billing import Invoice, InvoiceStatus


class InvoiceQueryService:
    """Service for invoice lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_invoice(self, invoice_id: uuid.UUID) -> Optional[Invoice]:
        """Get invoice by ID with its lines."""
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(selectinload(Invoice.lines))
        )
        return result.scalar_one_or_none()

    async def list_invoices(
        self,
        account_id: Optional[uuid.UUID] = None,
        status: Optional[InvoiceStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Invoice], int]:
        """List invoices, newest period first."""
        query = select(Invoice)

        if account_id:
            query = query.where(Invoice.account_id == account_id)
        if status:
            query = query.where(Invoice.status == InvoiceStatus(status).value)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query) or 0

        query = query.order_by(
            Invoice.period_start.desc(), Invoice.created_at.desc()
        ).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total
