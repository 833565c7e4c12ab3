"""Tests for the invoice-facing service contracts."""

import pytest

from exportops.calc.estimator import RatesContext
from exportops.calc.rates import OmRate
from exportops.errors import InvoiceNotFoundError
from exportops.export.models import ExportFilters, Pagination
from exportops.export.rates_repository import StaticRatesRepository
from exportops.export.service import NO_SOURCE_WARNING, ExportService


def _invoices():
    return [
        {
            "invoice_number": "F-001",
            "invoice_date": "2024-03-01",
            "client_id": "C1",
            "client_name": "Pharmacie du Port",
            "territory_code": "GP",
            "invoice_ht_eur": 1000,
            "transit_fee_eur": 100,
            "transport_cost_eur": 20,
        },
        {
            "invoice_number": "F-002",
            "invoice_date": "2024-03-15",
            "client_id": "C2",
            "territory_code": "MQ",
            "invoice_ht_eur": 500,
            "transit_fee_eur": 300,
        },
        {"invoice_number": "F-003", "invoice_date": "2024-04-02", "invoice_ht_eur": 200},
    ]


@pytest.fixture()
def service(memory_backend, settings):
    rates = StaticRatesRepository(RatesContext(om_rates=(OmRate(territory_code="GP", om_rate=10),)))
    return ExportService(memory_backend, rates, settings=settings)


class TestFetchInvoices:
    def test_falls_back_when_view_is_missing(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()

        result = service.fetch_invoices()

        assert result.source == "sales_invoices"
        assert result.total == 3
        assert [inv.invoice_number for inv in result.data] == ["F-003", "F-002", "F-001"]
        assert result.warning == "Fallback sur sales_invoices (vue manquante)"

    def test_prefers_enriched_view(self, service, memory_backend):
        memory_backend.tables["v_sales_invoices_enriched"] = _invoices()[:1]
        memory_backend.tables["sales_invoices"] = _invoices()

        result = service.fetch_invoices()

        assert result.source == "v_sales_invoices_enriched"
        assert result.total == 1
        assert result.warning is None

    def test_no_source_at_all(self, service):
        result = service.fetch_invoices()
        assert result.data == []
        assert result.total == 0
        assert result.warning == NO_SOURCE_WARNING
        assert result.source is None

    def test_pagination_and_filters(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()

        page = service.fetch_invoices(ExportFilters(date_from="2024-03-01"), Pagination(page=2, page_size=2))

        assert page.total == 3
        assert [inv.invoice_number for inv in page.data] == ["F-001"]

    def test_rates_warning_is_carried(self, memory_backend, settings):
        memory_backend.tables["sales_invoices"] = _invoices()
        rates = StaticRatesRepository(warning="Tables manquantes: vat_rates")
        result = ExportService(memory_backend, rates, settings=settings).fetch_invoices()
        assert result.warning == "Tables manquantes: vat_rates | Fallback sur sales_invoices (vue manquante)"

    def test_unexpected_error_propagates(self, service, memory_backend):
        memory_backend.failures["v_sales_invoices_enriched"] = RuntimeError("connection reset by peer")
        with pytest.raises(RuntimeError):
            service.fetch_invoices()

    def test_undefined_operator_propagates(self, service, memory_backend):
        fault = RuntimeError("operator does not exist: date >= integer")
        fault.pgcode = "42883"
        memory_backend.failures["v_sales_invoices_enriched"] = fault
        memory_backend.failures["sales_invoices"] = fault
        with pytest.raises(RuntimeError, match="operator does not exist"):
            service.fetch_invoices()


class TestFetchInvoiceByNumber:
    def test_detail_with_lines_and_competitors(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()
        memory_backend.tables["sales"] = [
            {"invoice_number": "F-001", "product_id": "SKU-1", "amount_ht": 600},
            {"invoice_number": "F-001", "product_id": "SKU-2", "amount_ht": 400},
            {"invoice_number": "F-002", "product_id": "SKU-1", "amount_ht": 500},
        ]
        memory_backend.tables["v_export_pricing"] = [
            {"sku": "SKU-1", "territory_code": "GP", "thuasne_price_ttc": "19,90", "donjoy_price_ttc": None},
            {"sku": "SKU-2", "territory_code": "MQ", "gibaud_price_ttc": 12},
        ]

        detail = service.fetch_invoice_by_number(" F-001 ")

        assert detail.invoice.invoice_number == "F-001"
        assert detail.invoice.estimated_export_costs.om == pytest.approx(90)
        assert "Vue invoices manquante (v_sales_invoices_enriched)" in detail.invoice.warning
        assert [line.product_id for line in detail.lines] == ["SKU-1", "SKU-2"]
        assert detail.lines_warning is None
        assert [(c.sku, c.competitor, c.price) for c in detail.competitors] == [("SKU-1", "Thuasne", 19.9)]

    def test_not_found(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()
        with pytest.raises(InvoiceNotFoundError) as excinfo:
            service.fetch_invoice_by_number("F-999")
        assert excinfo.value.invoice_number == "F-999"

    def test_empty_number(self, service):
        with pytest.raises(ValueError):
            service.fetch_invoice_by_number("  ")

    def test_missing_sales_and_pricing_tables(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()
        detail = service.fetch_invoice_by_number("F-002")
        assert detail.lines == []
        assert detail.lines_warning == "Table sales manquante"
        assert detail.competitors == []


class TestInvoiceLines:
    def test_tries_alternate_columns(self, service, memory_backend):
        memory_backend.tables["sales"] = [{"order_id": "F-001", "product_id": "SKU-9", "total_ht": 10}]
        result = service.fetch_invoice_lines("F-001")
        assert [line.product_id for line in result.data] == ["SKU-9"]
        assert result.data[0].invoice_number == "F-001"

    def test_no_lines(self, service, memory_backend):
        memory_backend.tables["sales"] = [{"invoice_number": "F-002"}]
        result = service.fetch_invoice_lines("F-001")
        assert result.data == []
        assert result.warning == "Aucune ligne trouvee pour cette facture"

    def test_pricing_view_missing(self, service):
        result = service.fetch_competitor_prices("GP", ["SKU-1"])
        assert result.warning == "v_export_pricing manquante pour la concurrence"


class TestFolds:
    def test_kpis(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()

        kpis = service.fetch_kpis()

        assert kpis.invoice_count == 3
        assert kpis.ca_ht == 1700
        assert kpis.total_transit == 400
        assert kpis.total_products == pytest.approx(1300)
        # MQ and the territory-less invoice fall back to the first OM row
        assert kpis.estimated_export_costs.om == pytest.approx(90 + 20 + 20)
        assert kpis.estimated_margin == pytest.approx(1300 - (400 + 130 + 20))
        assert kpis.source == "sales_invoices"

    def test_alerts(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()
        ids = {alert.id for alert in service.fetch_alerts()}
        assert {"missing-client", "missing-territory", "products-estimated", "transit-high", "invoice-warning"} <= ids

    def test_top_clients(self, service, memory_backend):
        memory_backend.tables["sales_invoices"] = _invoices()
        clients = service.fetch_top_clients()
        assert [c.client_id for c in clients][0] == "C1"
        assert {c.client_name for c in clients} >= {"Pharmacie du Port", "C2", "Sans client"}

    def test_sales_lines(self, service, memory_backend):
        memory_backend.tables["sales"] = [{"date": "2024-01-01", "net_sales_ht": "10", "zone": "UE"}]
        result = service.fetch_sales_lines()
        assert result.total == 1
        assert result.data[0].market_zone == "UE"

    def test_sales_table_missing(self, service):
        result = service.fetch_sales_lines()
        assert result.warning == "Table sales manquante"
