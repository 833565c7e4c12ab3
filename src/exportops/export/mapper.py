"""Column-alias tolerant mapping from raw store rows to typed records.

The store's schema has drifted (enriched views vs. raw tables, renamed
columns), so each logical field is read from an ordered list of candidate
columns.  This module is the only place that knows about those aliases; the
calc engines downstream only see typed dataclasses.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional

from exportops.calc.estimator import RatesContext, estimate_export_costs
from exportops.calc.rates import ExtraTaxRule, OctroiRate, OmRate, VatRate
from exportops.calc.types import CostLine, SalesLine
from exportops.calc.validators import coerce_number, normalize_text
from exportops.export.models import Invoice, InvoiceLine

_NAN = float("nan")

INVOICE_NUMBER_COLUMNS = ("invoice_number", "number", "invoice_no", "id")
INVOICE_DATE_COLUMNS = ("invoice_date", "date")
INVOICE_HT_COLUMNS = ("invoice_ht_eur", "amount_ht", "total_ht")
TRANSIT_FEE_COLUMNS = ("transit_fee_eur", "transit_fee")
PRODUCTS_HT_COLUMNS = ("products_ht_eur", "products_amount_ht")
TRANSPORT_COLUMNS = ("transport_cost_eur", "transport_cost", "transport_fee_eur")
TERRITORY_COLUMNS = ("territory_code", "market_zone", "ile", "island")
PARCEL_COLUMNS = ("nb_colis", "parcel_count", "nb_parcels")


def first_present(row: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Value of the first key that holds something other than ``None``."""
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _first_truthy(row: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value:
            return value
    return None


def _first_number(row: Mapping[str, Any], keys: Iterable[str], fallback: float = 0.0) -> float:
    for key in keys:
        number = coerce_number(row.get(key), _NAN)
        if not math.isnan(number):
            return number
    return fallback


def _optional_text(value: Any) -> Optional[str]:
    text = normalize_text(value)
    return text or None


def _optional_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = coerce_number(value, _NAN)
    return None if math.isnan(number) else number


# ---------------------------------------------------------------------------
# Rate rows
# ---------------------------------------------------------------------------
def _rate_common(row: Mapping[str, Any]) -> dict:
    return {
        "territory_code": normalize_text(first_present(row, ("territory_code", "territory", "code"))),
        "start_date": _optional_text(first_present(row, ("start_date", "valid_from"))),
        "end_date": _optional_text(first_present(row, ("end_date", "valid_to"))),
        "id": _optional_text(row.get("id")),
    }


def vat_rate_from_row(row: Mapping[str, Any]) -> VatRate:
    return VatRate(
        rate_percent=_first_number(row, ("rate_percent", "rate", "vat_rate")),
        **_rate_common(row),
    )


def om_rate_from_row(row: Mapping[str, Any]) -> OmRate:
    return OmRate(
        om_rate=_first_number(row, ("om_rate", "rate")),
        omr_rate=_first_number(row, ("omr_rate",)),
        hs_code=_optional_text(row.get("hs_code")),
        **_rate_common(row),
    )


def octroi_rate_from_row(row: Mapping[str, Any]) -> OctroiRate:
    return OctroiRate(
        rate_percent=_first_number(row, ("rate_percent", "rate", "octroi_rate")),
        **_rate_common(row),
    )


def extra_rule_from_row(row: Mapping[str, Any]) -> ExtraTaxRule:
    return ExtraTaxRule(
        rate_percent=_first_number(row, ("rate_percent", "rate")),
        flat_amount=_first_number(row, ("flat_eur", "flat_amount")),
        label=_optional_text(first_present(row, ("label", "name"))),
        **_rate_common(row),
    )


def rates_context_from_rows(
    vat_rows: Iterable[Mapping[str, Any]] = (),
    om_rows: Iterable[Mapping[str, Any]] = (),
    octroi_rows: Iterable[Mapping[str, Any]] = (),
    extra_rows: Iterable[Mapping[str, Any]] = (),
) -> RatesContext:
    return RatesContext(
        vat_rates=tuple(vat_rate_from_row(r) for r in vat_rows),
        om_rates=tuple(om_rate_from_row(r) for r in om_rows),
        octroi_rates=tuple(octroi_rate_from_row(r) for r in octroi_rows),
        extra_rules=tuple(extra_rule_from_row(r) for r in extra_rows),
    )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------
def map_invoice_row(
    row: Mapping[str, Any],
    source: str,
    rates: RatesContext,
    *,
    now_ms: Optional[float] = None,
) -> Invoice:
    """Normalize one invoice row and estimate its export costs.

    ``products_ht`` is read from a products-only column when present, else
    derived as ``invoice_ht - transit_fee`` and flagged as estimated.
    """
    invoice_ht = coerce_number(first_present(row, INVOICE_HT_COLUMNS))
    transit_fee = coerce_number(first_present(row, TRANSIT_FEE_COLUMNS))
    provided_products = first_present(row, PRODUCTS_HT_COLUMNS)
    products_estimated = provided_products is None
    if products_estimated:
        products_ht = invoice_ht - transit_fee
    else:
        products_ht = coerce_number(provided_products)
    transport_cost = coerce_number(first_present(row, TRANSPORT_COLUMNS))
    territory = _optional_text(first_present(row, TERRITORY_COLUMNS))

    costs = estimate_export_costs(products_ht, territory, rates, now_ms=now_ms)
    margin = products_ht - (transit_fee + costs.total + transport_cost)

    return Invoice(
        id=_optional_text(row.get("id")),
        invoice_number=normalize_text(_first_truthy(row, INVOICE_NUMBER_COLUMNS)) or "N/A",
        invoice_date=_optional_text(_first_truthy(row, INVOICE_DATE_COLUMNS)),
        client_id=_optional_text(row.get("client_id")),
        client_name=_optional_text(first_present(row, ("client_name", "client_label"))),
        territory_code=_optional_text(row.get("territory_code")),
        ile=_optional_text(first_present(row, ("ile", "island"))),
        parcel_count=_optional_number(first_present(row, PARCEL_COLUMNS)),
        currency=normalize_text(row.get("currency")) or "EUR",
        invoice_ht=invoice_ht,
        products_ht=products_ht,
        products_estimated=products_estimated,
        transit_fee=transit_fee,
        transport_cost=transport_cost,
        estimated_export_costs=costs,
        estimated_margin=margin,
        status=_optional_text(row.get("status")),
        source=source,
    )


def invoice_line_from_row(row: Mapping[str, Any], invoice_number: str) -> InvoiceLine:
    return InvoiceLine(
        id=_optional_text(row.get("id")),
        invoice_number=_optional_text(row.get("invoice_number")) or invoice_number,
        product_id=_optional_text(row.get("product_id")),
        product_label=_optional_text(row.get("product_label")),
        quantity=_optional_number(row.get("quantity")),
        unit_price_ht=_optional_number(row.get("unit_price_ht")),
        total_ht=_optional_number(first_present(row, ("amount_ht", "total_ht"))),
        weight_kg=_optional_number(row.get("weight_kg")),
        territory_code=_optional_text(row.get("territory_code")),
    )


# ---------------------------------------------------------------------------
# Sales / cost lines
# ---------------------------------------------------------------------------
def sales_line_from_row(row: Mapping[str, Any]) -> SalesLine:
    return SalesLine(
        id=_optional_text(row.get("id")),
        date=_optional_text(first_present(row, ("date", "sale_date", "invoice_date"))),
        client_id=_optional_text(row.get("client_id")),
        product_id=_optional_text(row.get("product_id")),
        quantity=first_present(row, ("quantity", "qty")),
        unit_price_ht=row.get("unit_price_ht"),
        net_sales_ht=first_present(row, ("net_sales_ht", "amount_ht")),
        currency=_optional_text(row.get("currency")),
        market_zone=_optional_text(first_present(row, ("market_zone", "zone", "territory_code"))),
        incoterm=_optional_text(row.get("incoterm")),
        destination=_optional_text(first_present(row, ("destination", "destination_id"))),
    )


def cost_line_from_row(row: Mapping[str, Any]) -> CostLine:
    return CostLine(
        id=_optional_text(row.get("id")),
        date=_optional_text(first_present(row, ("date", "cost_date"))),
        cost_type=_optional_text(first_present(row, ("cost_type", "type"))),
        amount=first_present(row, ("amount", "amount_ht")),
        currency=_optional_text(row.get("currency")),
        market_zone=_optional_text(first_present(row, ("market_zone", "zone", "territory_code"))),
        incoterm=_optional_text(row.get("incoterm")),
        client_id=_optional_text(row.get("client_id")),
        product_id=_optional_text(row.get("product_id")),
        destination=_optional_text(row.get("destination")),
    )


def sales_lines_from_rows(rows: Iterable[Mapping[str, Any]]) -> List[SalesLine]:
    return [sales_line_from_row(r) for r in rows]


def cost_lines_from_rows(rows: Iterable[Mapping[str, Any]]) -> List[CostLine]:
    return [cost_line_from_row(r) for r in rows]
