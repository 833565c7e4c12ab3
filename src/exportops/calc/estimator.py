"""Export cost estimator.

Computes the tax/duty charges carried by an export on a monetary base:

  vat + om (general + regional) + octroi + extra rules (percent + flat)

Each category is resolved independently through :func:`pick_rate`.  A
category without a row contributes zero; only a territory with no row in any
category is flagged ``estimated``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from exportops.calc.rates import (
    EXTRA_RULES_TABLE,
    OCTROI_TABLE,
    OM_TABLE,
    VAT_TABLE,
    ExtraTaxRule,
    OctroiRate,
    OmRate,
    VatRate,
    pick_rate,
)

logger = logging.getLogger(__name__)

ALL_RATE_TABLES = (VAT_TABLE, OM_TABLE, OCTROI_TABLE, EXTRA_RULES_TABLE)


@dataclass(frozen=True)
class RatesContext:
    """The four reference tables, already loaded and typed."""

    vat_rates: Sequence[VatRate] = ()
    om_rates: Sequence[OmRate] = ()
    octroi_rates: Sequence[OctroiRate] = ()
    extra_rules: Sequence[ExtraTaxRule] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.vat_rates or self.om_rates or self.octroi_rates or self.extra_rules)


@dataclass(frozen=True)
class CostComponents:
    """Estimated charges on one base, with provenance."""

    vat: float = 0.0
    om: float = 0.0
    octroi: float = 0.0
    extra_rules: float = 0.0
    total: float = 0.0
    sources: List[str] = field(default_factory=list)
    estimated: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimate_export_costs(
    base: float,
    territory: Optional[str],
    rates: RatesContext,
    *,
    now_ms: Optional[float] = None,
) -> CostComponents:
    """Estimate VAT, Octroi de Mer, octroi and extra-rule charges on *base*.

    No rounding is applied; percentages are plain ``base * pct / 100``.
    """
    vat_row = pick_rate(rates.vat_rates, territory, now_ms=now_ms)
    om_row = pick_rate(rates.om_rates, territory, now_ms=now_ms)
    octroi_row = pick_rate(rates.octroi_rates, territory, now_ms=now_ms)
    extra_row = pick_rate(rates.extra_rules, territory, now_ms=now_ms)

    vat = base * vat_row.rate_percent / 100 if vat_row else 0.0
    om = base * om_row.combined_percent / 100 if om_row else 0.0
    octroi = base * octroi_row.rate_percent / 100 if octroi_row else 0.0
    extra = base * extra_row.rate_percent / 100 + extra_row.flat_amount if extra_row else 0.0

    sources = [
        table
        for table, row in zip(ALL_RATE_TABLES, (vat_row, om_row, octroi_row, extra_row))
        if row is not None
    ]
    logger.debug(
        "Estimated export costs on %.2f for %s: sources=%s", base, territory or "-", sources
    )
    return CostComponents(
        vat=vat,
        om=om,
        octroi=octroi,
        extra_rules=extra,
        total=vat + om + octroi + extra,
        sources=sources,
        estimated=not sources,
    )


def sum_cost_components(items: Iterable[CostComponents]) -> CostComponents:
    """Fold per-invoice components into portfolio totals."""
    vat = om = octroi = extra = 0.0
    for item in items:
        vat += item.vat
        om += item.om
        octroi += item.octroi
        extra += item.extra_rules
    return CostComponents(
        vat=vat,
        om=om,
        octroi=octroi,
        extra_rules=extra,
        total=vat + om + octroi + extra,
        sources=list(ALL_RATE_TABLES),
        estimated=False,
    )
