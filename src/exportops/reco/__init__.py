"""Reconciliation of client invoices against supplier cost documents."""

from exportops.reco.classify import KeywordRule, PilotageRules, apply_rules_to_cost_docs, apply_rules_to_invoice, classify_text
from exportops.reco.models import (
    CostDoc,
    CostDocLine,
    ImportedInvoice,
    ImportedInvoiceLine,
    MarginResult,
    ReconciliationCase,
    RiskTag,
    RiskThresholds,
    TransitCoverage,
)
from exportops.reco.reconcile import (
    CaseAggregates,
    RiskRow,
    aggregate_cases,
    case_to_dict,
    classify_risk,
    margin,
    reconcile,
    risk_rows,
    shares_any_identifier,
    transit_coverage,
)
from exportops.reco.rules import CaseAlert, CaseEvaluation, evaluate_case

__all__ = [
    "CaseAggregates",
    "CaseAlert",
    "CaseEvaluation",
    "CostDoc",
    "CostDocLine",
    "ImportedInvoice",
    "ImportedInvoiceLine",
    "KeywordRule",
    "MarginResult",
    "PilotageRules",
    "ReconciliationCase",
    "RiskRow",
    "RiskTag",
    "RiskThresholds",
    "TransitCoverage",
    "aggregate_cases",
    "apply_rules_to_cost_docs",
    "apply_rules_to_invoice",
    "case_to_dict",
    "classify_risk",
    "classify_text",
    "evaluate_case",
    "margin",
    "reconcile",
    "risk_rows",
    "shares_any_identifier",
    "transit_coverage",
]
