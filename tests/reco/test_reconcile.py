"""Tests for invoice / cost-document matching, margins and risk rows."""

import math

import pytest

from exportops.reco.models import CostDoc, CostDocLine, ImportedInvoice, ImportedInvoiceLine, RiskTag, RiskThresholds
from exportops.reco.reconcile import (
    DEFAULT_RECOMMENDATION,
    RECOMMENDATIONS,
    aggregate_cases,
    case_to_dict,
    classify_risk,
    margin,
    recommend,
    reconcile,
    risk_rows,
    risk_score,
    transit_coverage,
)


def _doc(number, lines, **ids):
    return CostDoc(
        doc_number=number,
        lines=tuple(CostDocLine(amount=amount, type=cost_type) for cost_type, amount in lines),
        **ids,
    )


@pytest.fixture()
def portfolio():
    invoices = [
        ImportedInvoice(invoice_number="INV-5", client_name="Alpha", destination="GP", total_ht=500.0),
        ImportedInvoice(
            invoice_number="INV-6", client_name="Beta", destination="RE", incoterm="DAP",
            total_ht=1000.0, transit_fee=150.0,
        ),
        ImportedInvoice(invoice_number="INV-7", client_name="Alpha", destination="GP", total_ht=1000.0),
        ImportedInvoice(invoice_number="INV-8", client_name="Gamma", total_ht=1000.0),
    ]
    docs = [
        _doc("C-5", [("transport", 600.0)], invoice_number="INV-5", supplier="Bollore"),
        _doc("C-6", [("transit", 200.0)], invoice_number="INV-6", supplier="Geodis"),
        _doc("C-7", [("transport", 900.0), ("douane", 80.0)], invoice_number="INV-7"),
        _doc("C-8", [("transport", 100.0)], invoice_number="INV-8"),
    ]
    return reconcile(invoices, docs)


class TestMatching:
    def test_any_shared_identifier_matches(self):
        invoice = ImportedInvoice(invoice_number="F-1", shipment_ref="SHP-42")
        doc = _doc("C-1", [("transport", 10.0)], shipment_ref="SHP-42")
        (case,) = reconcile([invoice], [doc])
        assert [d.doc_number for d in case.cost_docs] == ["C-1"]
        assert case.matched_by == ("shipment_ref",)
        assert case.match_score == 75
        assert case.match_status == "partial"

    def test_identifiers_are_trimmed_and_case_folded(self):
        invoice = ImportedInvoice(invoice_number="F-1", awb=" awb-9 ")
        doc = _doc("C-1", [], awb="AWB-9")
        (case,) = reconcile([invoice], [doc])
        assert case.cost_docs == (doc,)

    def test_invoice_number_match_scores_highest(self):
        invoice = ImportedInvoice(invoice_number="F-1", bl="BL-1")
        docs = [_doc("C-1", [], bl="BL-1"), _doc("C-2", [], invoice_number="f-1", flow_code="X")]
        (case,) = reconcile([invoice], docs)
        assert case.matched_by == ("invoice_number", "bl")
        assert case.match_score == 95
        assert case.match_status == "match"

    def test_empty_identifiers_never_match(self):
        (case,) = reconcile([ImportedInvoice(invoice_number="F-1")], [_doc("C-1", [])])
        assert case.cost_docs == ()
        assert case.match_score == 0
        assert case.match_status == "none"

    def test_one_document_may_serve_several_cases(self):
        invoices = [
            ImportedInvoice(invoice_number="F-1", flow_code="FLOW-1"),
            ImportedInvoice(invoice_number="F-2", flow_code="FLOW-1"),
        ]
        cases = reconcile(invoices, [_doc("C-1", [("transport", 10.0)], flow_code="FLOW-1")])
        assert [len(case.cost_docs) for case in cases] == [1, 1]

    def test_case_id_and_missing_fields(self):
        invoice = ImportedInvoice(total_ht=None, total_tva=0.0)
        (case,) = reconcile([invoice], [])
        assert case.id == "case-1"
        assert case.missing_fields == ("invoice_number", "total_ht", "invoice_date", "total_tva", "total_ttc")

    def test_untyped_cost_lines_are_classified_first(self):
        invoice = ImportedInvoice(invoice_number="F-1")
        doc = CostDoc(
            doc_number="C-1",
            invoice_number="F-1",
            lines=(CostDocLine(amount=40.0, type="autre", label="Dédouanement import"),),
        )
        (case,) = reconcile([invoice], [doc])
        assert case.cost_docs[0].lines[0].type == "douane"


class TestMeasures:
    def test_loss(self, portfolio):
        case = portfolio[0]
        result = margin(case)
        assert result.amount == -100
        assert result.rate == pytest.approx(-20)
        assert classify_risk(case) == [RiskTag.PERTE]
        assert transit_coverage(case).coverage is None

    def test_uncovered_transit(self, portfolio):
        case = portfolio[1]
        coverage = transit_coverage(case)
        assert coverage.transit_costs == 200
        assert coverage.transit_billed == 150
        assert coverage.coverage == pytest.approx(0.75)
        assert coverage.uncovered == 50
        assert classify_risk(case) == [RiskTag.TRANSIT_NON_COUVERT]

    def test_low_margin(self, portfolio):
        assert margin(portfolio[2]).rate == pytest.approx(2)
        assert classify_risk(portfolio[2]) == [RiskTag.MARGE_FAIBLE]
        assert classify_risk(portfolio[3]) == []

    def test_low_amount_uses_custom_thresholds(self, portfolio):
        assert classify_risk(portfolio[3], RiskThresholds(min_margin_rate_pct=0, min_margin_amount=1000)) == [
            RiskTag.MARGE_FAIBLE
        ]

    def test_zero_revenue_rate_is_nan(self):
        (case,) = reconcile([ImportedInvoice(invoice_number="F-0", total_ht=0.0)], [])
        result = margin(case)
        assert result.amount == 0
        assert math.isnan(result.rate)
        assert result.rate_display == "n/a"
        assert case_to_dict(case)["margin"]["rate"] is None

    def test_transit_billed_from_invoice_lines(self):
        invoice = ImportedInvoice(
            invoice_number="F-1",
            total_ht=1000.0,
            lines=(
                ImportedInvoiceLine(total_ht=900.0, description="Orthèses", cost_type="produit"),
                ImportedInvoiceLine(total_ht=100.0, description="Frais de transit"),
            ),
        )
        (case,) = reconcile([invoice], [_doc("C-1", [("transit", 400.0)], invoice_number="F-1")])
        coverage = transit_coverage(case)
        assert coverage.transit_billed == 100
        assert coverage.coverage == pytest.approx(0.25)

    def test_case_to_dict(self, portfolio):
        payload = case_to_dict(portfolio[1])
        assert payload["invoice_number"] == "INV-6"
        assert payload["forwarder"] == "Geodis"
        assert payload["cost_doc_numbers"] == ["C-6"]
        assert payload["costs_by_type"]["transit"] == 200
        assert payload["costs_by_type"]["assurance"] == 0
        assert payload["margin"] == {"amount": 800, "rate": pytest.approx(80)}


class TestRiskRows:
    def test_order_and_scores(self, portfolio):
        rows = risk_rows(portfolio)
        assert [row.case.id for row in rows] == ["INV-5", "INV-7", "INV-6"]
        assert [row.score for row in rows] == [1400, 580, 200]

    def test_recommendations(self, portfolio):
        rows = {row.case.id: row for row in risk_rows(portfolio)}
        assert rows["INV-5"].recommendation == RECOMMENDATIONS[RiskTag.PERTE]
        assert rows["INV-6"].to_dict()["tags"] == ["TRANSIT_NON_COUVERT"]

    def test_query_filters_case_insensitively(self, portfolio):
        rows = risk_rows(portfolio, query="  dap ")
        assert [row.case.id for row in rows] == ["INV-6"]

    def test_limit(self, portfolio):
        assert len(risk_rows(portfolio, limit=1)) == 1

    def test_score_ignores_undefined_rate(self):
        assert risk_score([RiskTag.PERTE], math.nan) == 1000
        assert risk_score([], 25.0) == 0

    def test_default_recommendation(self):
        assert recommend([]) == DEFAULT_RECOMMENDATION
        both = recommend([RiskTag.TRANSIT_NON_COUVERT, RiskTag.PERTE])
        assert both.startswith(RECOMMENDATIONS[RiskTag.PERTE])


class TestAggregates:
    def test_buckets_and_coverage(self, portfolio):
        aggregates = aggregate_cases(portfolio)
        assert aggregates.coverage_average == pytest.approx(0.75)
        assert aggregates.uncovered_total == 50
        assert aggregates.by_client["Alpha"].count == 2
        assert aggregates.by_client["Alpha"].margin == pytest.approx(-100 + 20)
        assert aggregates.by_destination["Inconnu"].count == 1
        assert aggregates.by_incoterm["NC"].count == 3
        assert aggregates.by_forwarder["Bollore"].margin == -100
        assert aggregates.by_forwarder["Inconnu"].count == 2
        assert [case.id for case in aggregates.top_losses][:2] == ["INV-5", "INV-7"]

    def test_no_applicable_coverage(self):
        aggregates = aggregate_cases(reconcile([ImportedInvoice(invoice_number="F-1", total_ht=10.0)], []))
        assert aggregates.coverage_average is None
        assert aggregates.uncovered_total == 0

    def test_top_losses_limit(self, portfolio):
        payload = aggregate_cases(portfolio, top_losses=1).to_dict()
        assert [case["id"] for case in payload["top_losses"]] == ["INV-5"]
