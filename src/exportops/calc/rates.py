"""Rate rows and the single-row resolver used by every estimator.

Reference tables (``vat_rates``, ``om_rates``, ``octroi_rates``,
``tax_rules_extra``) are small and curated, and are expected to be stored in
priority order.  Resolution is therefore a filter, not a ranking: the first
row whose territory matches and whose validity window contains "now" wins,
and when nothing matches the first configured row is returned.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from exportops.calc.types import BreakdownFilters
from exportops.calc.validators import normalize_text, parse_timestamp

VAT_TABLE = "vat_rates"
OM_TABLE = "om_rates"
OCTROI_TABLE = "octroi_rates"
EXTRA_RULES_TABLE = "tax_rules_extra"


# ---------------------------------------------------------------------------
# Rate rows
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RateRow:
    """Fields shared by every reference-table row."""

    territory_code: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class VatRate(RateRow):
    rate_percent: float = 0.0


@dataclass(frozen=True)
class OmRate(RateRow):
    """Octroi de Mer: general (``om_rate``) and regional (``omr_rate``) parts."""

    om_rate: float = 0.0
    omr_rate: float = 0.0
    hs_code: Optional[str] = None

    @property
    def combined_percent(self) -> float:
        return self.om_rate + self.omr_rate


@dataclass(frozen=True)
class OctroiRate(RateRow):
    rate_percent: float = 0.0


@dataclass(frozen=True)
class ExtraTaxRule(RateRow):
    """Miscellaneous charge: a percentage, a flat amount, or both."""

    rate_percent: float = 0.0
    flat_amount: float = 0.0
    label: Optional[str] = None


R = TypeVar("R", bound=RateRow)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------
def territory_matches(row_territory: Optional[str], territory: Optional[str]) -> bool:
    """Case-insensitive containment of *territory* in the row's code.

    Containment is deliberate: rows keyed ``"GP/MQ"`` or ``"FR-GP"`` serve
    a ``"GP"`` lookup.
    """
    wanted = normalize_text(territory).lower()
    if not wanted:
        return False
    return wanted in normalize_text(row_territory).lower()


def is_active(row: RateRow, now_ms: Optional[float] = None) -> bool:
    """True when the row's validity window contains *now_ms*.

    A missing bound is open.  A bound that cannot be parsed makes the row
    inactive.
    """
    now = time.time() * 1000.0 if now_ms is None else now_ms
    if row.start_date:
        start = parse_timestamp(row.start_date)
        if start is None or start > now:
            return False
    if row.end_date:
        end = parse_timestamp(row.end_date)
        if end is None or end < now:
            return False
    return True


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
def pick_rate(
    rows: Sequence[R],
    territory: Optional[str] = None,
    *,
    now_ms: Optional[float] = None,
) -> Optional[R]:
    """Select the applicable row for *territory*.

    - no rows: ``None``; callers must not invent a rate.
    - no territory: ``rows[0]``.
    - otherwise the first row (input order) matching the territory and active
      at *now_ms*, falling back to ``rows[0]``.
    """
    if not rows:
        return None
    if not normalize_text(territory):
        return rows[0]

    for row in rows:
        if territory_matches(row.territory_code, territory) and is_active(row, now_ms):
            return row
    return rows[0]


def pick_rate_for_filters(
    rows: Sequence[R],
    filters: Optional[BreakdownFilters],
    *,
    now_ms: Optional[float] = None,
) -> Optional[R]:
    """Resolve against ``filters.destination``, else ``filters.zone``."""
    territory = filters.territory if filters is not None else None
    return pick_rate(rows, territory, now_ms=now_ms)
