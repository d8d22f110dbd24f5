"""
Month-End Billing Job.

Generates last month's invoice for every active account:
- Period is [first day of previous month, first day of current month)
- Accounts already invoiced for the period are skipped
- One account's failure is recorded and the run continues

Triggers:
- Monthly scheduled job (via APScheduler)
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coldstore.core.exceptions import BillingError, DuplicateInvoiceError
from coldstore.models.operations import Account
from coldstore.services.billing_orchestrator import BillingOrchestrator

logger = logging.getLogger(__name__)


def previous_month_period(today: date) -> Tuple[date, date]:
    """[start, end) of the calendar month before `today`."""
    period_end = today.replace(day=1)
    if period_end.month == 1:
        period_start = period_end.replace(year=period_end.year - 1, month=12)
    else:
        period_start = period_end.replace(month=period_end.month - 1)
    return period_start, period_end


async def run_monthly_billing_job(
    db: AsyncSession,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Bill the previous month for all active accounts.

    Returns:
        Summary with generated, skipped and failed accounts
    """
    period_start, period_end = previous_month_period(today or date.today())
    as_of = datetime.now(timezone.utc)
    logger.info(f"Starting month-end billing for [{period_start}, {period_end})")

    results: Dict[str, Any] = {
        "started_at": as_of.isoformat(),
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "accounts": 0,
        "generated": [],
        "skipped": [],
        "errors": [],
    }

    result = await db.execute(
        select(Account.id).where(Account.is_active == True).order_by(Account.name)  # noqa: E712
    )
    account_ids = [row[0] for row in result.all()]
    results["accounts"] = len(account_ids)

    orchestrator = BillingOrchestrator(db)
    for account_id in account_ids:
        try:
            invoice = await orchestrator.generate_invoice(
                account_id, period_start, period_end, as_of=as_of
            )
            results["generated"].append({
                "account_id": str(account_id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "total_amount": str(invoice.total_amount),
            })
        except DuplicateInvoiceError:
            results["skipped"].append(str(account_id))
        except BillingError as e:
            logger.error(f"Billing failed for account {account_id}: {e}")
            results["errors"].append({"account_id": str(account_id), "error": str(e)})
        except Exception as e:
            logger.exception(f"Unexpected billing failure for account {account_id}")
            results["errors"].append({"account_id": str(account_id), "error": str(e)})

    results["completed_at"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        f"Month-end billing completed: {len(results['generated'])} generated, "
        f"{len(results['skipped'])} skipped, {len(results['errors'])} failed"
    )
    return results
