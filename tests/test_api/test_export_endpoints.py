import pytest
from fastapi.testclient import TestClient

from exportops.api.app import app
from exportops.calc.estimator import RatesContext
from exportops.calc.rates import VatRate
from exportops.export.rates_repository import StaticRatesRepository
from exportops.export.service import ExportService

client = TestClient(app)


@pytest.fixture()
def store(memory_backend, settings):
    memory_backend.tables["sales_invoices"] = [
        {
            "invoice_number": "F-001",
            "invoice_date": "2024-03-01",
            "client_id": "C1",
            "territory_code": "GP",
            "invoice_ht_eur": 1000,
            "transit_fee_eur": 100,
        },
    ]
    rates = StaticRatesRepository(RatesContext(vat_rates=(VatRate(territory_code="GP", rate_percent=10),)))
    app.state.export_service = ExportService(memory_backend, rates, settings=settings)
    yield memory_backend
    app.state.export_service = None


def test_health_without_store() -> None:
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["store"] is False


def test_run_id_header_is_echoed() -> None:
    response = client.get("/v1/health", headers={"X-Run-ID": "run-42"})
    assert response.headers["X-Run-ID"] == "run-42"
    assert client.get("/v1/health").headers["X-Run-ID"]


def test_estimate_with_posted_rates() -> None:
    response = client.post(
        "/v1/estimate",
        json={
            "base": 1000,
            "territory": "GP",
            "rates": {"vat_rates": [{"territory_code": "GP", "rate_percent": "8,5"}]},
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["vat"] == pytest.approx(85)
    assert body["sources"] == ["vat_rates"]
    assert body["estimated"] is False
    assert body["warning"] is None


def test_estimate_without_rates_or_store() -> None:
    response = client.post("/v1/estimate", json={"base": 1000})
    assert response.status_code == 503


def test_estimate_rejects_unknown_fields() -> None:
    response = client.post("/v1/estimate", json={"base": 1000, "rate": 5})
    assert response.status_code == 422


def test_estimate_uses_store_rates(store) -> None:
    response = client.post("/v1/estimate", json={"base": 200, "territory": "GP"})
    assert response.status_code == 200
    assert response.json()["vat"] == pytest.approx(20)


def test_breakdown() -> None:
    response = client.post(
        "/v1/breakdown",
        json={"sales_lines": [{"net_sales_ht": 1000, "market_zone": "UE"}], "filters": {"zone": "UE"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["totals"]["ca_ht"] == 1000
    assert body["totals"]["margin"] == 1000
    assert set(body["by_zone"]) == {"UE"}


def test_invoices(store) -> None:
    response = client.get("/v1/invoices", params={"page": 1, "page_size": 10})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["source"] == "sales_invoices"
    assert body["warning"] == "Fallback sur sales_invoices (vue manquante)"
    invoice = body["data"][0]
    assert invoice["products_ht"] == 900
    assert invoice["estimated_export_costs"]["vat"] == pytest.approx(90)


def test_invoices_without_store() -> None:
    assert client.get("/v1/invoices").status_code == 503


def test_invoice_detail(store) -> None:
    response = client.get("/v1/invoices/F-001")
    assert response.status_code == 200
    assert response.json()["invoice"]["invoice_number"] == "F-001"
    assert response.json()["lines_warning"] == "Table sales manquante"

    assert client.get("/v1/invoices/F-404").status_code == 404


def test_portfolio_folds(store) -> None:
    kpis = client.get("/v1/kpis").json()
    assert kpis["invoice_count"] == 1
    assert kpis["total_transit"] == 100

    alert_ids = {alert["id"] for alert in client.get("/v1/alerts").json()}
    assert "products-estimated" in alert_ids

    clients = client.get("/v1/top-clients").json()
    assert clients[0]["client_id"] == "C1"

    sales = client.get("/v1/sales").json()
    assert sales["warning"] == "Table sales manquante"


def test_reconcile() -> None:
    response = client.post(
        "/v1/reconcile",
        json={
            "invoices": [{"invoiceNumber": "INV-1", "totalHT": 500, "destination": "GP"}],
            "cost_docs": [{"docNumber": "C-1", "invoiceNumber": "INV-1", "lines": [{"amount": 600, "type": "transport"}]}],
            "known_destinations": ["GP"],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["cases"][0]["match_status"] == "match"
    assert body["risk_rows"][0]["tags"] == ["PERTE"]
    assert body["risk_summary"]["PERTE"] == 1


def test_reconcile_rejects_negative_threshold() -> None:
    response = client.post("/v1/reconcile", json={"coverage_threshold": -1})
    assert response.status_code == 422
