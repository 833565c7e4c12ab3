"""Filter, bucket and margin computation over sales and cost lines.

One VAT row and one OM row are resolved for the filtered context
(destination, else zone) and applied uniformly to the totals and to every
bucket: buckets are partitions of that same context.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from exportops.calc.rates import OmRate, VatRate, pick_rate_for_filters
from exportops.calc.types import (
    BreakdownFilters,
    BreakdownMetric,
    BreakdownTotals,
    CostLine,
    ExportBreakdown,
    SalesLine,
)
from exportops.calc.validators import coerce_number, matches_date_range, normalize_text, summarize_warning

logger = logging.getLogger(__name__)

MISSING_BUCKET = "NA"
VAT_FALLBACK_WARNING = summarize_warning("TVA estimée à 0%", "aucun taux trouvé dans vat_rates")
OM_FALLBACK_WARNING = summarize_warning("OM estimé à 0%", "aucune règle om_rates appliquée")


def _equals(value: Optional[str], wanted: Optional[str]) -> bool:
    return normalize_text(value).lower() == normalize_text(wanted).lower()


def _line_matches(line: SalesLine | CostLine, filters: BreakdownFilters) -> bool:
    if not matches_date_range(line.date, filters.start_date, filters.end_date):
        return False
    if filters.zone and not _equals(line.market_zone, filters.zone):
        return False
    if filters.destination:
        dest = normalize_text(line.destination or line.market_zone).lower()
        if filters.destination.strip().lower() not in dest:
            return False
    if filters.incoterm and not _equals(line.incoterm, filters.incoterm):
        return False
    if filters.client_id and not _equals(line.client_id, filters.client_id):
        return False
    if filters.product_id and not _equals(line.product_id, filters.product_id):
        return False
    return True


def filter_sales(lines: Iterable[SalesLine], filters: Optional[BreakdownFilters]) -> List[SalesLine]:
    if filters is None:
        return list(lines)
    return [line for line in lines if _line_matches(line, filters)]


def filter_costs(lines: Iterable[CostLine], filters: Optional[BreakdownFilters]) -> List[CostLine]:
    if filters is None:
        return list(lines)
    return [line for line in lines if _line_matches(line, filters)]


def sales_amount(line: SalesLine) -> float:
    """Net sales HT, else ``quantity * unit_price_ht``."""
    net = coerce_number(line.net_sales_ht)
    return net or coerce_number(line.quantity) * coerce_number(line.unit_price_ht)


def margin_rate(ca_ht: float, margin: float) -> float:
    return margin / ca_ht * 100 if ca_ht > 0 else 0.0


def _bucket_keys(line: SalesLine | CostLine) -> tuple[str, str, str]:
    zone = normalize_text(line.market_zone) or MISSING_BUCKET
    destination = normalize_text(line.destination) or zone
    incoterm = normalize_text(line.incoterm) or MISSING_BUCKET
    return zone, destination, incoterm


def _upsert(container: Dict[str, BreakdownMetric], key: str) -> BreakdownMetric:
    metric = container.get(key)
    if metric is None:
        metric = container[key] = BreakdownMetric()
    return metric


def _apply_rates(metric: BreakdownMetric, vat_pct: float, om_pct: float) -> None:
    metric.vat = metric.ca_ht * vat_pct / 100
    metric.om = metric.ca_ht * om_pct / 100
    metric.margin = metric.ca_ht - metric.costs - metric.vat - metric.om


def compute_export_breakdown(
    sales_lines: Sequence[SalesLine],
    cost_lines: Sequence[CostLine],
    vat_rates: Sequence[VatRate] = (),
    om_rates: Sequence[OmRate] = (),
    filters: Optional[BreakdownFilters] = None,
    *,
    now_ms: Optional[float] = None,
) -> ExportBreakdown:
    """Aggregate revenue, costs, VAT, OM and margin globally and per bucket.

    Missing rate rows never raise; they produce a zero component and a
    warning string.
    """
    warnings: List[str] = []
    sales = filter_sales(sales_lines or (), filters)
    costs = filter_costs(cost_lines or (), filters)

    totals = BreakdownTotals()
    for line in sales:
        totals.qty += coerce_number(line.quantity)
        totals.ca_ht += sales_amount(line)
    totals.costs = sum(coerce_number(line.amount) for line in costs)

    vat_row = pick_rate_for_filters(vat_rates, filters, now_ms=now_ms)
    om_row = pick_rate_for_filters(om_rates, filters, now_ms=now_ms)
    if vat_row is None:
        warnings.append(VAT_FALLBACK_WARNING)
    if om_row is None:
        warnings.append(OM_FALLBACK_WARNING)
    vat_pct = vat_row.rate_percent if vat_row else 0.0
    om_pct = om_row.combined_percent if om_row else 0.0

    _apply_rates(totals, vat_pct, om_pct)
    totals.margin_rate = margin_rate(totals.ca_ht, totals.margin)
    totals.avg_price = totals.ca_ht / totals.qty if totals.qty > 0 else 0.0

    by_zone: Dict[str, BreakdownMetric] = {}
    by_destination: Dict[str, BreakdownMetric] = {}
    by_incoterm: Dict[str, BreakdownMetric] = {}
    buckets = (by_zone, by_destination, by_incoterm)

    for line in sales:
        qty = coerce_number(line.quantity)
        amount = sales_amount(line)
        for container, key in zip(buckets, _bucket_keys(line)):
            metric = _upsert(container, key)
            metric.ca_ht += amount
            metric.qty += qty

    for line in costs:
        amount = coerce_number(line.amount)
        for container, key in zip(buckets, _bucket_keys(line)):
            _upsert(container, key).costs += amount

    for container in buckets:
        for metric in container.values():
            _apply_rates(metric, vat_pct, om_pct)

    logger.debug(
        "Breakdown over %d sales / %d cost lines: ca_ht=%.2f margin=%.2f",
        len(sales), len(costs), totals.ca_ht, totals.margin,
    )
    return ExportBreakdown(
        totals=totals,
        by_zone=by_zone,
        by_destination=by_destination,
        by_incoterm=by_incoterm,
        warnings=warnings,
    )
