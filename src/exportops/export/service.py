"""Invoice-facing read contracts over an :class:`InvoiceBackend`.

Every method degrades on schema drift (missing view, table or column) into an
empty result carrying a warning, and lets any other backend error through.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from exportops.calc.types import SalesLine
from exportops.calc.validators import (
    coerce_number,
    combine_warnings,
    is_missing_column_error,
    is_missing_relation_error,
    is_missing_table_error,
    normalize_text,
)
from exportops.config import Settings, get_settings
from exportops.errors import InvoiceNotFoundError
from exportops.export.kpis import build_alerts, compute_kpis, rank_top_clients
from exportops.export.mapper import invoice_line_from_row, map_invoice_row, sales_lines_from_rows
from exportops.export.models import (
    Alert,
    CompetitorPrice,
    ExportFilters,
    FetchResult,
    Invoice,
    InvoiceDetail,
    InvoiceLine,
    KPIResult,
    Pagination,
    TopClient,
)
from exportops.export.rates_repository import RatesRepository
from exportops.export.sources import (
    INVOICE_SOURCES,
    InvoiceBackend,
    InvoiceQuery,
    InvoiceSource,
    fetch_from_sources,
)

logger = logging.getLogger(__name__)

SALES_TABLE = "sales"
PRICING_VIEW = "v_export_pricing"
INVOICE_LINE_COLUMNS = ("invoice_number", "invoice_no", "order_id")
INVOICE_LINE_LIMIT = 500
COMPETITOR_LIMIT = 2000
COMPETITOR_COLUMNS = (
    ("Thuasne", "thuasne_price_ttc"),
    ("Donjoy", "donjoy_price_ttc"),
    ("Gibaud", "gibaud_price_ttc"),
    ("Autre", "competitor_price"),
)

NO_SOURCE_WARNING = "Aucune source invoice disponible (v_sales_invoices_enriched ou sales_invoices)"


class ExportService:
    """Fetches invoices through the source fallback chain and folds them."""

    def __init__(
        self,
        backend: InvoiceBackend,
        rates: RatesRepository,
        *,
        sources: Sequence[InvoiceSource] = INVOICE_SOURCES,
        settings: Optional[Settings] = None,
    ) -> None:
        self.backend = backend
        self.rates = rates
        self.sources = tuple(sources)
        self.settings = settings or get_settings()

    # -- invoices ----------------------------------------------------------

    def fetch_invoices(
        self,
        filters: Optional[ExportFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> FetchResult[Invoice]:
        filters = filters or ExportFilters()
        offset, limit = (pagination or Pagination()).bounds(self.settings.page_size)
        rates = self.rates.load()

        def run(source: InvoiceSource, date_column: Optional[str]):
            query = InvoiceQuery(
                source=source.name,
                date_column=date_column or source.date_columns[0],
                filters=filters,
                offset=offset,
                limit=limit,
            )
            return self.backend.select_invoices(query)

        outcome = fetch_from_sources(self.sources, run)
        if outcome.exhausted:
            return FetchResult(data=[], total=0, warning=NO_SOURCE_WARNING)

        rows, count = outcome.result
        invoices = [map_invoice_row(row, outcome.source, rates.context) for row in rows]
        fallback = None
        if outcome.missing:
            logger.info("Invoices served from %s (missing: %s)", outcome.source, outcome.missing)
            fallback = f"Fallback sur {outcome.source} (vue manquante)"
        return FetchResult(
            data=invoices,
            total=count if count is not None else len(invoices),
            warning=combine_warnings(rates.warning, fallback),
            source=outcome.source,
        )

    def fetch_invoice_by_number(self, invoice_number: str) -> InvoiceDetail:
        number = normalize_text(invoice_number)
        if not number:
            raise ValueError("invoice_number requis")
        rates = self.rates.load()

        outcome = fetch_from_sources(
            self.sources,
            lambda source, _col: self.backend.select_where(source.name, "invoice_number", number, limit=1),
            use_date_columns=False,
            accept=bool,
        )
        if outcome.exhausted:
            raise InvoiceNotFoundError(number)

        invoice = map_invoice_row(outcome.result[0], outcome.source, rates.context)
        missing = f"Vue invoices manquante ({', '.join(outcome.missing)})" if outcome.missing else None
        invoice.warning = combine_warnings(rates.warning, missing)

        lines = self.fetch_invoice_lines(number)
        product_ids = [line.product_id for line in lines.data if line.product_id]
        competitors = self.fetch_competitor_prices(invoice.territory_code or invoice.ile, product_ids)
        return InvoiceDetail(
            invoice=invoice,
            lines=lines.data,
            lines_warning=lines.warning,
            competitors=competitors.data,
            competitor_warning=competitors.warning,
        )

    def fetch_invoice_lines(self, invoice_number: str) -> FetchResult[InvoiceLine]:
        for column in INVOICE_LINE_COLUMNS:
            try:
                rows = self.backend.select_where(SALES_TABLE, column, invoice_number, limit=INVOICE_LINE_LIMIT)
            except Exception as exc:
                if is_missing_column_error(exc):
                    continue
                if is_missing_relation_error(exc):
                    return FetchResult(warning="Table sales manquante")
                raise
            if rows:
                lines = [invoice_line_from_row(row, invoice_number) for row in rows]
                return FetchResult(data=lines, total=len(lines), source=SALES_TABLE)
        return FetchResult(warning="Aucune ligne trouvee pour cette facture")

    def fetch_competitor_prices(
        self, territory: Optional[str], skus: Iterable[str]
    ) -> FetchResult[CompetitorPrice]:
        unique_skus = list(dict.fromkeys(s for s in skus if s))
        if not unique_skus:
            return FetchResult()
        try:
            rows = self.backend.select_in(PRICING_VIEW, "sku", unique_skus, limit=COMPETITOR_LIMIT)
        except Exception as exc:
            if is_missing_table_error(exc):
                return FetchResult(warning=f"{PRICING_VIEW} manquante pour la concurrence")
            raise

        wanted = normalize_text(territory).upper()
        prices: List[CompetitorPrice] = []
        for row in rows:
            row_territory = normalize_text(row.get("territory_code")).upper()
            if wanted and row_territory and row_territory != wanted:
                continue
            prices.extend(_competitor_prices_from_row(row, territory))
        return FetchResult(data=prices, total=len(prices), source=PRICING_VIEW)

    def fetch_sales_lines(
        self,
        filters: Optional[ExportFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> FetchResult[SalesLine]:
        offset, limit = (pagination or Pagination()).bounds(self.settings.page_size)
        try:
            rows, count = self.backend.select_sales(filters or ExportFilters(), offset=offset, limit=limit)
        except Exception as exc:
            if is_missing_relation_error(exc):
                return FetchResult(warning="Table sales manquante")
            raise
        lines = sales_lines_from_rows(rows)
        return FetchResult(data=lines, total=count if count is not None else len(lines), source=SALES_TABLE)

    # -- folds -------------------------------------------------------------

    def _all_invoices(self, filters: Optional[ExportFilters]) -> FetchResult[Invoice]:
        return self.fetch_invoices(filters, Pagination(page=1, page_size=self.settings.max_rows))

    def fetch_kpis(self, filters: Optional[ExportFilters] = None) -> KPIResult:
        result = self._all_invoices(filters)
        return compute_kpis(result.data, source=result.source, warning=result.warning)

    def fetch_alerts(self, filters: Optional[ExportFilters] = None) -> List[Alert]:
        result = self._all_invoices(filters)
        return build_alerts(
            result.data,
            upstream_warning=result.warning,
            transit_alert_pct=self.settings.transit_alert_pct,
        )

    def fetch_top_clients(self, filters: Optional[ExportFilters] = None) -> List[TopClient]:
        result = self._all_invoices(filters)
        return rank_top_clients(result.data, limit=self.settings.top_clients)


def _competitor_prices_from_row(row: Mapping[str, Any], territory: Optional[str]) -> List[CompetitorPrice]:
    prices = []
    for competitor, column in COMPETITOR_COLUMNS:
        price = coerce_number(row.get(column), math.nan)
        if math.isnan(price):
            continue
        prices.append(
            CompetitorPrice(
                source=PRICING_VIEW,
                sku=normalize_text(row.get("sku")),
                competitor=competitor,
                price=price,
                label=normalize_text(row.get("label")) or None,
                territory_code=normalize_text(row.get("territory_code")) or territory,
            )
        )
    return prices
