"""Records for reconciling client invoices against supplier cost documents.

Imported payloads come from CSV/PDF extraction and older JSON exports, in
either camelCase or snake_case; ``from_mapping`` accepts both.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from exportops.calc.validators import coerce_number, normalize_text

COST_TYPES = ("transport", "douane", "transit", "frais_dossier", "assurance", "autre")
TRANSIT = "transit"
OTHER = "autre"


def _get(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _text(row: Mapping[str, Any], *keys: str) -> Optional[str]:
    return normalize_text(_get(row, *keys)) or None


def _amount(row: Mapping[str, Any], *keys: str) -> Optional[float]:
    value = _get(row, *keys)
    if value is None:
        return None
    number = coerce_number(value, math.nan)
    return None if math.isnan(number) else number


def normalize_cost_type(value: Any) -> str:
    text = normalize_text(value).lower()
    return text if text in COST_TYPES else OTHER


@dataclass(frozen=True)
class CostDocLine:
    amount: float = 0.0
    type: str = OTHER
    label: str = ""
    line_number: int = 0
    currency: str = "EUR"
    reference: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any], index: int = 0) -> "CostDocLine":
        return cls(
            amount=_amount(row, "amount") or 0.0,
            type=normalize_cost_type(_get(row, "type", "cost_type", "costType")),
            label=normalize_text(_get(row, "label", "description")),
            line_number=int(coerce_number(_get(row, "line_number", "lineNumber"), index + 1)),
            currency=normalize_text(row.get("currency")) or "EUR",
            reference=_text(row, "reference", "account"),
        )


@dataclass(frozen=True)
class CostDoc:
    """A supplier document (forwarder, carrier, customs broker invoice)."""

    doc_number: str
    doc_date: Optional[str] = None
    currency: str = "EUR"
    supplier: Optional[str] = None
    flow_code: Optional[str] = None
    invoice_number: Optional[str] = None
    shipment_ref: Optional[str] = None
    awb: Optional[str] = None
    bl: Optional[str] = None
    lines: Tuple[CostDocLine, ...] = ()
    source: Optional[str] = None

    @property
    def total(self) -> float:
        return sum(line.amount for line in self.lines)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "CostDoc":
        return cls(
            doc_number=normalize_text(_get(row, "doc_number", "docNumber")),
            doc_date=_text(row, "doc_date", "docDate"),
            currency=normalize_text(row.get("currency")) or "EUR",
            supplier=_text(row, "supplier", "forwarder"),
            flow_code=_text(row, "flow_code", "flowCode"),
            invoice_number=_text(row, "invoice_number", "invoiceNumber"),
            shipment_ref=_text(row, "shipment_ref", "shipmentRef"),
            awb=_text(row, "awb"),
            bl=_text(row, "bl"),
            lines=tuple(CostDocLine.from_mapping(line, i) for i, line in enumerate(row.get("lines") or ())),
            source=_text(row, "source"),
        )


@dataclass(frozen=True)
class ImportedInvoiceLine:
    total_ht: float = 0.0
    description: str = ""
    line_number: int = 0
    account: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_tva: Optional[float] = None
    total_ttc: Optional[float] = None
    cost_type: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any], index: int = 0) -> "ImportedInvoiceLine":
        cost_type = _text(row, "cost_type", "costType")
        return cls(
            total_ht=_amount(row, "total_ht", "totalHT") or 0.0,
            description=normalize_text(_get(row, "description", "label")),
            line_number=int(coerce_number(_get(row, "line_number", "lineNumber"), index + 1)),
            account=_text(row, "account"),
            quantity=_amount(row, "quantity"),
            unit_price=_amount(row, "unit_price", "unitPrice"),
            total_tva=_amount(row, "total_tva", "totalTVA"),
            total_ttc=_amount(row, "total_ttc", "totalTTC"),
            cost_type=cost_type.lower() if cost_type else None,
        )


@dataclass(frozen=True)
class ImportedInvoice:
    """A client invoice imported from the accounting export."""

    invoice_number: str = ""
    client_name: Optional[str] = None
    client_code: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    currency: str = "EUR"
    total_ht: Optional[float] = None
    total_tva: Optional[float] = None
    total_ttc: Optional[float] = None
    shipment_ref: Optional[str] = None
    awb: Optional[str] = None
    bl: Optional[str] = None
    incoterm: Optional[str] = None
    destination: Optional[str] = None
    flow_code: Optional[str] = None
    transit_fee: Optional[float] = None
    lines: Tuple[ImportedInvoiceLine, ...] = ()

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "ImportedInvoice":
        incoterm = _text(row, "incoterm")
        return cls(
            invoice_number=normalize_text(_get(row, "invoice_number", "invoiceNumber")),
            client_name=_text(row, "client_name", "clientName"),
            client_code=_text(row, "client_code", "clientCode"),
            invoice_date=_text(row, "invoice_date", "invoiceDate"),
            due_date=_text(row, "due_date", "dueDate"),
            currency=normalize_text(row.get("currency")) or "EUR",
            total_ht=_amount(row, "total_ht", "totalHT"),
            total_tva=_amount(row, "total_tva", "totalTVA"),
            total_ttc=_amount(row, "total_ttc", "totalTTC"),
            shipment_ref=_text(row, "shipment_ref", "shipmentRef"),
            awb=_text(row, "awb"),
            bl=_text(row, "bl"),
            incoterm=incoterm.upper() if incoterm else None,
            destination=_text(row, "destination"),
            flow_code=_text(row, "flow_code", "flowCode"),
            transit_fee=_amount(row, "transit_fee", "transitFee"),
            lines=tuple(
                ImportedInvoiceLine.from_mapping(line, i) for i, line in enumerate(row.get("lines") or ())
            ),
        )


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------
class RiskTag(str, Enum):
    PERTE = "PERTE"
    MARGE_FAIBLE = "MARGE_FAIBLE"
    TRANSIT_NON_COUVERT = "TRANSIT_NON_COUVERT"


@dataclass(frozen=True)
class RiskThresholds:
    min_margin_rate_pct: float = 5.0
    min_margin_amount: float = 50.0


@dataclass(frozen=True)
class MarginResult:
    """``rate`` is NaN when the invoice total is zero; it is never forced to 0."""

    amount: float
    rate: float

    @property
    def rate_display(self) -> str:
        return f"{self.rate:.1f}%" if math.isfinite(self.rate) else "n/a"


@dataclass(frozen=True)
class TransitCoverage:
    """``coverage`` is ``None`` when there is no transit cost to cover."""

    transit_costs: float
    transit_billed: float
    coverage: Optional[float]

    @property
    def uncovered(self) -> float:
        return max(0.0, self.transit_costs - self.transit_billed)


@dataclass(frozen=True)
class ReconciliationCase:
    id: str
    invoice: ImportedInvoice
    cost_docs: Tuple[CostDoc, ...] = ()
    matched_by: Tuple[str, ...] = ()
    missing_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def forwarder(self) -> Optional[str]:
        return self.cost_docs[0].supplier if self.cost_docs else None

    @property
    def match_score(self) -> int:
        if not self.cost_docs:
            return 0
        return 95 if "invoice_number" in self.matched_by else 75

    @property
    def match_status(self) -> str:
        score = self.match_score
        if score >= 80:
            return "match"
        return "partial" if score >= 40 else "none"
