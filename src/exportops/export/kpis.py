"""Portfolio folds over normalized invoices: KPIs, alerts, top clients."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from exportops.calc.estimator import sum_cost_components
from exportops.export.models import Alert, Invoice, KPIResult, TopClient

TRANSIT_ALERT_PCT = 0.35
TOP_CLIENTS_LIMIT = 12
NO_CLIENT_KEY = "NC"
DEFAULT_SOURCE = "sales_invoices"


def compute_kpis(
    invoices: Sequence[Invoice],
    *,
    source: Optional[str] = None,
    warning: Optional[str] = None,
) -> KPIResult:
    total_products = sum(inv.products_ht for inv in invoices)
    total_transit = sum(inv.transit_fee for inv in invoices)
    total_transport = sum(inv.transport_cost for inv in invoices)
    export_costs = sum_cost_components(inv.estimated_export_costs for inv in invoices)

    return KPIResult(
        ca_ht=sum(inv.invoice_ht for inv in invoices),
        total_products=total_products,
        total_transit=total_transit,
        total_transport=total_transport,
        estimated_export_costs=export_costs,
        estimated_margin=total_products - (total_transit + export_costs.total + total_transport),
        invoice_count=len(invoices),
        parcel_count=sum(inv.parcel_count or 0.0 for inv in invoices),
        source=source or DEFAULT_SOURCE,
        warning=warning,
    )


def transit_ratio_exceeds(invoice: Invoice, threshold: float = TRANSIT_ALERT_PCT) -> bool:
    return invoice.invoice_ht > 0 and invoice.transit_fee / invoice.invoice_ht > threshold


def build_alerts(
    invoices: Sequence[Invoice],
    *,
    upstream_warning: Optional[str] = None,
    transit_alert_pct: float = TRANSIT_ALERT_PCT,
) -> List[Alert]:
    """One alert per data-quality condition class, never one per invoice."""
    alerts: List[Alert] = []

    missing_client = sum(1 for inv in invoices if not inv.client_id)
    if missing_client:
        alerts.append(
            Alert(
                id="missing-client",
                severity="warning",
                title=f"{missing_client} facture(s) sans client_id",
                description="Verifier le mapping clients.",
            )
        )

    missing_territory = sum(1 for inv in invoices if not inv.territory_code and not inv.ile)
    if missing_territory:
        alerts.append(
            Alert(
                id="missing-territory",
                severity="warning",
                title=f"{missing_territory} facture(s) sans territoire",
                description="Completer territory_code / ile.",
            )
        )

    estimated = sum(1 for inv in invoices if inv.products_estimated)
    if estimated:
        alerts.append(
            Alert(
                id="products-estimated",
                severity="info",
                title=f"{estimated} facture(s) avec products_ht estime",
                description="Calcul = invoice_ht - transit_fee.",
            )
        )

    transit_heavy = sum(1 for inv in invoices if transit_ratio_exceeds(inv, transit_alert_pct))
    if transit_heavy:
        alerts.append(
            Alert(
                id="transit-high",
                severity="critical",
                title=f"Transit fee > {round(transit_alert_pct * 100)}% sur {transit_heavy} facture(s)",
                description="Verifier la ventilation prix / transit.",
            )
        )

    missing_transport = sum(1 for inv in invoices if not inv.transport_cost)
    if missing_transport:
        alerts.append(
            Alert(
                id="missing-transport",
                severity="info",
                title=f"{missing_transport} facture(s) sans cout transport renseigne",
                description="Transport reste informatif mais utile pour le drilldown.",
            )
        )

    if upstream_warning:
        alerts.append(Alert(id="invoice-warning", severity="info", title=upstream_warning))

    return alerts


def rank_top_clients(invoices: Sequence[Invoice], limit: int = TOP_CLIENTS_LIMIT) -> List[TopClient]:
    """Clients by descending estimated margin; invoices without client share ``NC``."""
    by_client: Dict[str, TopClient] = {}
    for inv in invoices:
        key = inv.client_id or NO_CLIENT_KEY
        entry = by_client.get(key)
        if entry is None:
            entry = by_client[key] = TopClient(
                client_id=inv.client_id,
                client_name=inv.client_name or inv.client_id or "Sans client",
                territory_code=inv.territory_code,
            )
        entry.ca_ht += inv.invoice_ht
        entry.products_ht += inv.products_ht
        entry.margin_estimee += inv.estimated_margin

    ranked = sorted(by_client.values(), key=lambda c: c.margin_estimee, reverse=True)
    return ranked[:limit]
