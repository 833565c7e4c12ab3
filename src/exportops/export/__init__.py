"""Invoice mapping, source fallback, rates loading and portfolio folds."""

from exportops.export.kpis import build_alerts, compute_kpis, rank_top_clients
from exportops.export.mapper import map_invoice_row, rates_context_from_rows
from exportops.export.models import (
    Alert,
    ExportFilters,
    FetchResult,
    Invoice,
    InvoiceDetail,
    KPIResult,
    Pagination,
    TopClient,
)
from exportops.export.rates_repository import (
    BackendRatesRepository,
    RatesLoad,
    RatesRepository,
    StaticRatesRepository,
)
from exportops.export.service import ExportService
from exportops.export.sources import INVOICE_SOURCES, InvoiceSource, fetch_from_sources

__all__ = [
    "Alert",
    "BackendRatesRepository",
    "ExportFilters",
    "ExportService",
    "FetchResult",
    "INVOICE_SOURCES",
    "Invoice",
    "InvoiceDetail",
    "InvoiceSource",
    "KPIResult",
    "Pagination",
    "RatesLoad",
    "RatesRepository",
    "StaticRatesRepository",
    "TopClient",
    "build_alerts",
    "compute_kpis",
    "fetch_from_sources",
    "map_invoice_row",
    "rank_top_clients",
    "rates_context_from_rows",
]
