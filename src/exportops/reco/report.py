"""Full reconciliation run over imported payloads, as one JSON-ready report."""

from __future__ import annotations

from typing import Any, Collection, Dict, Mapping, Optional, Sequence

from exportops.reco.classify import DEFAULT_RULES
from exportops.reco.models import CostDoc, ImportedInvoice, RiskTag, RiskThresholds
from exportops.reco.reconcile import aggregate_cases, case_to_dict, reconcile, risk_rows
from exportops.reco.rules import DEFAULT_COVERAGE_THRESHOLD, evaluate_case


def reconciliation_report(
    invoice_rows: Sequence[Mapping[str, Any]],
    cost_doc_rows: Sequence[Mapping[str, Any]],
    *,
    thresholds: RiskThresholds = RiskThresholds(),
    coverage_threshold: float = DEFAULT_COVERAGE_THRESHOLD,
    query: Optional[str] = None,
    known_destinations: Optional[Collection[str]] = None,
    run_id: Optional[str] = None,
) -> Dict[str, Any]:
    cases = reconcile(
        [ImportedInvoice.from_mapping(row) for row in invoice_rows],
        [CostDoc.from_mapping(row) for row in cost_doc_rows],
        rules=DEFAULT_RULES,
        run_id=run_id,
    )

    payload_cases = []
    for case in cases:
        entry = case_to_dict(case)
        entry["evaluation"] = evaluate_case(
            case,
            coverage_threshold=coverage_threshold,
            known_destinations=known_destinations,
        ).to_dict()
        payload_cases.append(entry)

    rows = risk_rows(cases, thresholds=thresholds, query=query)
    return {
        "cases": payload_cases,
        "risk_rows": [row.to_dict() for row in rows],
        "risk_summary": {
            "at_risk": len(rows),
            **{tag.value: sum(1 for row in rows if tag in row.tags) for tag in RiskTag},
        },
        "aggregates": aggregate_cases(cases).to_dict(),
    }
