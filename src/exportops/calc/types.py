from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

Number = Union[int, float, str, None]


@dataclass(frozen=True)
class SalesLine:
    """One sold unit or batch.  Numeric fields may still be raw strings."""

    date: Optional[str] = None
    client_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Number = None
    unit_price_ht: Number = None
    net_sales_ht: Number = None
    currency: Optional[str] = None
    market_zone: Optional[str] = None
    incoterm: Optional[str] = None
    destination: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class CostLine:
    """One cost entry tied to a sale or shipment."""

    date: Optional[str] = None
    cost_type: Optional[str] = None
    amount: Number = None
    currency: Optional[str] = None
    market_zone: Optional[str] = None
    incoterm: Optional[str] = None
    client_id: Optional[str] = None
    product_id: Optional[str] = None
    destination: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class BreakdownFilters:
    """Unset fields put no constraint on their dimension."""

    start_date: Optional[str] = None
    end_date: Optional[str] = None
    zone: Optional[str] = None
    destination: Optional[str] = None
    incoterm: Optional[str] = None
    client_id: Optional[str] = None
    product_id: Optional[str] = None

    @property
    def territory(self) -> Optional[str]:
        return self.destination or self.zone


@dataclass
class BreakdownMetric:
    ca_ht: float = 0.0
    qty: float = 0.0
    costs: float = 0.0
    vat: float = 0.0
    om: float = 0.0
    margin: float = 0.0


@dataclass
class BreakdownTotals(BreakdownMetric):
    avg_price: float = 0.0
    margin_rate: float = 0.0


@dataclass
class ExportBreakdown:
    totals: BreakdownTotals
    by_zone: Dict[str, BreakdownMetric] = field(default_factory=dict)
    by_destination: Dict[str, BreakdownMetric] = field(default_factory=dict)
    by_incoterm: Dict[str, BreakdownMetric] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
