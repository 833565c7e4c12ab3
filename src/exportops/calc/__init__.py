"""Pure computation core: coercion, rate resolution, cost estimation, breakdowns."""

from exportops.calc.breakdown import compute_export_breakdown, filter_costs, filter_sales
from exportops.calc.estimator import CostComponents, RatesContext, estimate_export_costs
from exportops.calc.rates import (
    ExtraTaxRule,
    OctroiRate,
    OmRate,
    VatRate,
    pick_rate,
    pick_rate_for_filters,
    territory_matches,
)
from exportops.calc.types import BreakdownFilters, CostLine, ExportBreakdown, SalesLine
from exportops.calc.validators import (
    coerce_number,
    is_missing_table_error,
    matches_date_range,
    normalize_text,
)

__all__ = [
    "BreakdownFilters",
    "CostComponents",
    "CostLine",
    "ExportBreakdown",
    "ExtraTaxRule",
    "OctroiRate",
    "OmRate",
    "RatesContext",
    "SalesLine",
    "VatRate",
    "coerce_number",
    "compute_export_breakdown",
    "estimate_export_costs",
    "filter_costs",
    "filter_sales",
    "is_missing_table_error",
    "matches_date_range",
    "normalize_text",
    "pick_rate",
    "pick_rate_for_filters",
    "territory_matches",
]
