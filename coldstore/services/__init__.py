# Billing services
from coldstore.services.rate_catalog import RateCatalog
from coldstore.services.usage_sources import SqlUsageSource
from coldstore.services.usage_aggregator import UsageAggregator
from coldstore.services.charge_resolver import ChargeResolver
from coldstore.services.invoice_builder import InvoiceBuilder
from coldstore.services.billing_orchestrator import BillingOrchestrator
from coldstore.services.invoice_queries import InvoiceQueryService

__all__ = [
    "RateCatalog",
    "SqlUsageSource",
    "UsageAggregator",
    "ChargeResolver",
    "InvoiceBuilder",
    "BillingOrchestrator",
    "InvoiceQueryService",
]
