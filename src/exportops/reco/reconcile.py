"""Invoice / cost-document reconciliation, margins and risk tagging.

A cost document joins an invoice's case as soon as they share ANY non-empty
identifier (flow code, invoice number, shipment reference, AWB or BL).  Over
matching is accepted: an unmatched cost silently disappears from the margin,
a spurious one shows up as a loss that someone will look at.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from exportops.observability import log_event, run_scope
from exportops.reco.classify import DEFAULT_RULES, PilotageRules, apply_rules_to_cost_docs, apply_rules_to_invoice
from exportops.reco.models import (
    COST_TYPES,
    TRANSIT,
    CostDoc,
    ImportedInvoice,
    MarginResult,
    ReconciliationCase,
    RiskTag,
    RiskThresholds,
    TransitCoverage,
)

logger = logging.getLogger(__name__)

IDENTIFIER_FIELDS = ("flow_code", "invoice_number", "shipment_ref", "awb", "bl")
UNKNOWN_BUCKET = "Inconnu"
NO_INCOTERM_BUCKET = "NC"
TOP_LOSSES_LIMIT = 20
RISK_ROWS_LIMIT = 50

RECOMMENDATIONS = {
    RiskTag.PERTE: "Revoir la grille tarifaire / refacturation (dossier en perte).",
    RiskTag.MARGE_FAIBLE: "Augmenter prix / refacturer coûts ou renégocier transport/transitaire.",
    RiskTag.TRANSIT_NON_COUVERT: "Transit non couvert : vérifier refacturation au client ou intégrer au prix.",
}
DEFAULT_RECOMMENDATION = "Surveiller."

TAG_WEIGHTS = {
    RiskTag.PERTE: 1000,
    RiskTag.MARGE_FAIBLE: 400,
    RiskTag.TRANSIT_NON_COUVERT: 200,
}


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------
def _identifier(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def shared_identifiers(invoice: ImportedInvoice, doc: CostDoc) -> Tuple[str, ...]:
    """Names of the identifiers both sides carry with the same (case-folded) value."""

    shared = []
    for name in IDENTIFIER_FIELDS:
        left = _identifier(getattr(invoice, name))
        if left and left == _identifier(getattr(doc, name)):
            shared.append(name)
    return tuple(shared)


def shares_any_identifier(invoice: ImportedInvoice, doc: CostDoc) -> bool:
    return bool(shared_identifiers(invoice, doc))


def missing_fields(invoice: ImportedInvoice) -> Tuple[str, ...]:
    missing = []
    if not invoice.invoice_number:
        missing.append("invoice_number")
    if invoice.total_ht is None:
        missing.append("total_ht")
    if not invoice.invoice_date:
        missing.append("invoice_date")
    if not invoice.total_tva:
        missing.append("total_tva")
    if not invoice.total_ttc:
        missing.append("total_ttc")
    return tuple(missing)


def reconcile(
    invoices: Sequence[ImportedInvoice],
    cost_docs: Sequence[CostDoc],
    *,
    rules: PilotageRules = DEFAULT_RULES,
    run_id: Optional[str] = None,
) -> List[ReconciliationCase]:
    """Build one case per invoice, attaching every cost document sharing an identifier.

    Untyped lines on both sides are classified with ``rules`` first.  A cost
    document may end up in several cases.
    """

    with run_scope(run_id):
        typed_docs = apply_rules_to_cost_docs(cost_docs, rules)
        cases: List[ReconciliationCase] = []
        for index, raw_invoice in enumerate(invoices):
            invoice = apply_rules_to_invoice(raw_invoice, rules)
            matched: List[CostDoc] = []
            matched_by: List[str] = []
            for doc in typed_docs:
                shared = shared_identifiers(invoice, doc)
                if not shared:
                    continue
                matched.append(doc)
                matched_by.extend(name for name in shared if name not in matched_by)
            cases.append(
                ReconciliationCase(
                    id=invoice.invoice_number or f"case-{index + 1}",
                    invoice=invoice,
                    cost_docs=tuple(matched),
                    matched_by=tuple(name for name in IDENTIFIER_FIELDS if name in matched_by),
                    missing_fields=missing_fields(invoice),
                )
            )
        unmatched = sum(1 for case in cases if not case.cost_docs)
        log_event(
            "reconciliation completed",
            log=logger,
            invoices=len(invoices),
            cost_docs=len(cost_docs),
            unmatched_invoices=unmatched,
        )
    return cases


# ---------------------------------------------------------------------------
# Per-case measures
# ---------------------------------------------------------------------------
def costs_by_type(case: ReconciliationCase) -> Dict[str, float]:
    totals = {cost_type: 0.0 for cost_type in COST_TYPES}
    for doc in case.cost_docs:
        for line in doc.lines:
            totals[line.type] = totals.get(line.type, 0.0) + line.amount
    return totals


def total_costs(case: ReconciliationCase) -> float:
    return sum(line.amount for doc in case.cost_docs for line in doc.lines)


def transit_billed(case: ReconciliationCase) -> float:
    """Invoice-side transit: the tracked fee when present, else the transit-typed lines."""

    if case.invoice.transit_fee is not None:
        return case.invoice.transit_fee
    return sum(line.total_ht for line in case.invoice.lines if (line.cost_type or "").lower() == TRANSIT)


def transit_coverage(case: ReconciliationCase) -> TransitCoverage:
    transit_costs = costs_by_type(case)[TRANSIT]
    billed = transit_billed(case)
    coverage = billed / transit_costs if transit_costs > 0 else None
    return TransitCoverage(transit_costs=transit_costs, transit_billed=billed, coverage=coverage)


def margin(case: ReconciliationCase) -> MarginResult:
    revenue = case.invoice.total_ht or 0.0
    amount = revenue - total_costs(case)
    rate = amount / revenue * 100 if revenue != 0 else math.nan
    return MarginResult(amount=amount, rate=rate)


def classify_risk(
    case: ReconciliationCase,
    thresholds: RiskThresholds = RiskThresholds(),
) -> List[RiskTag]:
    result = margin(case)
    coverage = transit_coverage(case)
    tags: List[RiskTag] = []
    if result.amount < 0:
        tags.append(RiskTag.PERTE)
    elif result.rate < thresholds.min_margin_rate_pct or result.amount < thresholds.min_margin_amount:
        tags.append(RiskTag.MARGE_FAIBLE)
    if coverage.transit_costs > 0 and coverage.coverage is not None and coverage.coverage < 1:
        tags.append(RiskTag.TRANSIT_NON_COUVERT)
    return tags


def case_to_dict(case: ReconciliationCase) -> Dict[str, Any]:
    """JSON-ready view of a case with its margin and coverage; NaN becomes ``None``."""

    result = margin(case)
    coverage = transit_coverage(case)
    return {
        "id": case.id,
        "invoice_number": case.invoice.invoice_number or None,
        "client_name": case.invoice.client_name,
        "destination": case.invoice.destination,
        "incoterm": case.invoice.incoterm,
        "forwarder": case.forwarder,
        "total_ht": case.invoice.total_ht,
        "cost_doc_numbers": [doc.doc_number for doc in case.cost_docs],
        "matched_by": list(case.matched_by),
        "match_score": case.match_score,
        "match_status": case.match_status,
        "missing_fields": list(case.missing_fields),
        "costs": total_costs(case),
        "costs_by_type": costs_by_type(case),
        "margin": {"amount": result.amount, "rate": _finite_or_none(result.rate)},
        "transit": {
            "transit_costs": coverage.transit_costs,
            "transit_billed": coverage.transit_billed,
            "coverage": coverage.coverage,
            "uncovered": coverage.uncovered,
        },
    }


# ---------------------------------------------------------------------------
# Risk view
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RiskRow:
    case: ReconciliationCase
    margin: MarginResult
    coverage: TransitCoverage
    tags: Tuple[RiskTag, ...]
    score: int
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        payload = case_to_dict(self.case)
        payload.update(
            tags=[tag.value for tag in self.tags],
            score=self.score,
            recommendation=self.recommendation,
        )
        return payload


def recommend(tags: Sequence[RiskTag]) -> str:
    actions = [RECOMMENDATIONS[tag] for tag in RiskTag if tag in tags]
    return " ".join(actions) if actions else DEFAULT_RECOMMENDATION


def risk_score(tags: Sequence[RiskTag], rate: float) -> int:
    """Sort key: losses, then low margin, then uncovered transit, then lowest rate."""

    score = sum(TAG_WEIGHTS[tag] for tag in tags)
    if math.isfinite(rate):
        score += max(0, 200 - round(rate * 10))
    return score


def _matches_query(case: ReconciliationCase, query: str) -> bool:
    invoice = case.invoice
    haystack = " ".join(
        (value or "").lower()
        for value in (invoice.invoice_number, invoice.client_name, invoice.destination, invoice.incoterm)
    )
    return query in haystack


def risk_rows(
    cases: Sequence[ReconciliationCase],
    *,
    thresholds: RiskThresholds = RiskThresholds(),
    query: Optional[str] = None,
    limit: Optional[int] = RISK_ROWS_LIMIT,
) -> List[RiskRow]:
    """At-risk cases only, highest score first; cases without tags never appear."""

    needle = (query or "").strip().lower()
    rows: List[RiskRow] = []
    for case in cases:
        tags = classify_risk(case, thresholds)
        if not tags or (needle and not _matches_query(case, needle)):
            continue
        result = margin(case)
        rows.append(
            RiskRow(
                case=case,
                margin=result,
                coverage=transit_coverage(case),
                tags=tuple(tags),
                score=risk_score(tags, result.rate),
                recommendation=recommend(tags),
            )
        )
    rows.sort(key=lambda row: row.score, reverse=True)
    return rows if limit is None else rows[:limit]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
@dataclass
class CaseBucket:
    margin: float = 0.0
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"margin": self.margin, "count": self.count}


@dataclass
class CaseAggregates:
    """``coverage_average`` only averages cases where coverage applies (transit costs > 0)."""

    coverage_average: Optional[float] = None
    uncovered_total: float = 0.0
    top_losses: List[ReconciliationCase] = field(default_factory=list)
    by_destination: Dict[str, CaseBucket] = field(default_factory=dict)
    by_client: Dict[str, CaseBucket] = field(default_factory=dict)
    by_incoterm: Dict[str, CaseBucket] = field(default_factory=dict)
    by_forwarder: Dict[str, CaseBucket] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        def buckets(values: Dict[str, CaseBucket]) -> Dict[str, Dict[str, Any]]:
            return {key: bucket.to_dict() for key, bucket in values.items()}

        return {
            "coverage_average": self.coverage_average,
            "uncovered_total": self.uncovered_total,
            "top_losses": [case_to_dict(case) for case in self.top_losses],
            "by_destination": buckets(self.by_destination),
            "by_client": buckets(self.by_client),
            "by_incoterm": buckets(self.by_incoterm),
            "by_forwarder": buckets(self.by_forwarder),
        }


def _add(buckets: Dict[str, CaseBucket], key: str, amount: float) -> None:
    bucket = buckets.setdefault(key, CaseBucket())
    bucket.margin += amount
    bucket.count += 1


def aggregate_cases(cases: Sequence[ReconciliationCase], *, top_losses: int = TOP_LOSSES_LIMIT) -> CaseAggregates:
    aggregates = CaseAggregates()
    coverages: List[float] = []

    for case in cases:
        amount = margin(case).amount
        coverage = transit_coverage(case)
        if coverage.coverage is not None:
            coverages.append(coverage.coverage)
            if coverage.coverage < 1:
                aggregates.uncovered_total += coverage.uncovered

        _add(aggregates.by_destination, case.invoice.destination or UNKNOWN_BUCKET, amount)
        _add(aggregates.by_client, case.invoice.client_name or UNKNOWN_BUCKET, amount)
        _add(aggregates.by_incoterm, case.invoice.incoterm or NO_INCOTERM_BUCKET, amount)
        _add(aggregates.by_forwarder, case.forwarder or UNKNOWN_BUCKET, amount)

    if coverages:
        aggregates.coverage_average = sum(coverages) / len(coverages)
    aggregates.top_losses = sorted(cases, key=lambda case: margin(case).amount)[:top_losses]
    return aggregates
