"""
Background Jobs Module

Handles scheduled tasks for:
- Month-end invoice generation
"""

from coldstore.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from coldstore.jobs.billing_jobs import run_monthly_billing_job

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "run_monthly_billing_job",
]
