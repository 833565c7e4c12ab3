"""Normalized invoice records and the results folded from them."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from exportops.calc.estimator import CostComponents

T = TypeVar("T")

AlertSeverity = Literal["info", "warning", "critical"]


@dataclass(frozen=True)
class ExportFilters:
    """Store-side invoice filters (``date_from``/``date_to`` are inclusive)."""

    date_from: Optional[str] = None
    date_to: Optional[str] = None
    territory: Optional[str] = None
    client_id: Optional[str] = None
    invoice_number: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    page_size: Optional[int] = None

    def bounds(self, default_size: int) -> tuple[int, int]:
        """Return ``(offset, limit)``; pages are 1-based."""
        size = self.page_size or default_size
        page = max(1, self.page)
        return (page - 1) * size, size


@dataclass
class Invoice:
    invoice_number: str
    invoice_ht: float
    products_ht: float
    products_estimated: bool
    transit_fee: float
    transport_cost: float
    estimated_export_costs: CostComponents
    estimated_margin: float
    source: str
    id: Optional[str] = None
    invoice_date: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    territory_code: Optional[str] = None
    ile: Optional[str] = None
    parcel_count: Optional[float] = None
    currency: str = "EUR"
    status: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InvoiceLine:
    id: Optional[str] = None
    invoice_number: Optional[str] = None
    product_id: Optional[str] = None
    product_label: Optional[str] = None
    quantity: Optional[float] = None
    unit_price_ht: Optional[float] = None
    total_ht: Optional[float] = None
    weight_kg: Optional[float] = None
    territory_code: Optional[str] = None


@dataclass
class CompetitorPrice:
    source: str
    sku: str
    competitor: str
    price: float
    label: Optional[str] = None
    territory_code: Optional[str] = None


@dataclass
class FetchResult(Generic[T]):
    data: List[T] = field(default_factory=list)
    total: int = 0
    warning: Optional[str] = None
    source: Optional[str] = None


@dataclass
class InvoiceDetail:
    invoice: Invoice
    lines: List[InvoiceLine] = field(default_factory=list)
    lines_warning: Optional[str] = None
    competitors: List[CompetitorPrice] = field(default_factory=list)
    competitor_warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class KPIResult:
    ca_ht: float
    total_products: float
    total_transit: float
    total_transport: float
    estimated_export_costs: CostComponents
    estimated_margin: float
    invoice_count: int
    parcel_count: float
    source: str
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Alert:
    id: str
    severity: AlertSeverity
    title: str
    description: Optional[str] = None


@dataclass
class TopClient:
    client_id: Optional[str]
    client_name: Optional[str]
    ca_ht: float = 0.0
    products_ht: float = 0.0
    margin_estimee: float = 0.0
    territory_code: Optional[str] = None
