"""Cost estimation, breakdown and invoice endpoints.

  POST /v1/estimate             → export costs on one base amount
  POST /v1/breakdown            → aggregated margins over posted sales/cost lines
  GET  /v1/invoices             → paginated invoices through the source fallback
  GET  /v1/invoices/{number}    → one invoice with its lines and competitor prices
  GET  /v1/sales                → paginated sales lines
  GET  /v1/kpis | /v1/alerts | /v1/top-clients → portfolio folds
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from exportops.api.dependencies import get_export_service, get_optional_export_service
from exportops.calc.breakdown import compute_export_breakdown
from exportops.calc.estimator import estimate_export_costs
from exportops.calc.types import BreakdownFilters
from exportops.errors import InvoiceNotFoundError
from exportops.export.mapper import (
    cost_lines_from_rows,
    om_rate_from_row,
    rates_context_from_rows,
    sales_lines_from_rows,
    vat_rate_from_row,
)
from exportops.export.models import ExportFilters, Pagination
from exportops.export.service import ExportService

router = APIRouter(prefix="/v1", tags=["export"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class RateTablesModel(BaseModel):
    """Raw reference-table rows; column aliases are resolved by the mapper."""

    vat_rates: List[Dict[str, Any]] = Field(default_factory=list)
    om_rates: List[Dict[str, Any]] = Field(default_factory=list)
    octroi_rates: List[Dict[str, Any]] = Field(default_factory=list)
    extra_rules: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class EstimateRequest(BaseModel):
    base: float
    territory: Optional[str] = None
    rates: Optional[RateTablesModel] = None

    model_config = ConfigDict(extra="forbid")


class BreakdownFiltersModel(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    zone: Optional[str] = None
    destination: Optional[str] = None
    incoterm: Optional[str] = None
    client_id: Optional[str] = None
    product_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class BreakdownRequest(BaseModel):
    sales_lines: List[Dict[str, Any]] = Field(default_factory=list)
    cost_lines: List[Dict[str, Any]] = Field(default_factory=list)
    vat_rates: List[Dict[str, Any]] = Field(default_factory=list)
    om_rates: List[Dict[str, Any]] = Field(default_factory=list)
    filters: Optional[BreakdownFiltersModel] = None

    model_config = ConfigDict(extra="forbid")


def _export_filters(
    date_from: Optional[str] = Query(default=None),
    date_to: Optional[str] = Query(default=None),
    territory: Optional[str] = Query(default=None),
    client_id: Optional[str] = Query(default=None),
    invoice_number: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
) -> ExportFilters:
    return ExportFilters(
        date_from=date_from,
        date_to=date_to,
        territory=territory,
        client_id=client_id,
        invoice_number=invoice_number,
        search=search,
    )


def _pagination(
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=2000),
) -> Pagination:
    return Pagination(page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------
@router.post("/estimate")
def estimate(
    request: EstimateRequest,
    service: Optional[ExportService] = Depends(get_optional_export_service),
) -> Dict[str, Any]:
    """Estimate export costs; without posted rates the store's tables are used."""

    if request.rates is not None:
        context = rates_context_from_rows(
            request.rates.vat_rates,
            request.rates.om_rates,
            request.rates.octroi_rates,
            request.rates.extra_rules,
        )
        warning = None
    elif service is None:
        raise HTTPException(status_code=503, detail="Store backend unavailable; post the rate tables")
    else:
        loaded = service.rates.load()
        context, warning = loaded.context, loaded.warning
    components = estimate_export_costs(request.base, request.territory, context)
    return {**components.to_dict(), "warning": warning}


@router.post("/breakdown")
def breakdown(request: BreakdownRequest) -> Dict[str, Any]:
    filters = BreakdownFilters(**request.filters.model_dump()) if request.filters else None
    result = compute_export_breakdown(
        sales_lines_from_rows(request.sales_lines),
        cost_lines_from_rows(request.cost_lines),
        [vat_rate_from_row(row) for row in request.vat_rates],
        [om_rate_from_row(row) for row in request.om_rates],
        filters,
    )
    return result.to_dict()


# ---------------------------------------------------------------------------
# Store-backed reads
# ---------------------------------------------------------------------------
@router.get("/invoices")
def list_invoices(
    filters: ExportFilters = Depends(_export_filters),
    pagination: Pagination = Depends(_pagination),
    service: ExportService = Depends(get_export_service),
) -> Dict[str, Any]:
    result = service.fetch_invoices(filters, pagination)
    return {
        "data": [invoice.to_dict() for invoice in result.data],
        "total": result.total,
        "warning": result.warning,
        "source": result.source,
    }


@router.get("/invoices/{invoice_number}")
def get_invoice(
    invoice_number: str,
    service: ExportService = Depends(get_export_service),
) -> Dict[str, Any]:
    try:
        detail = service.fetch_invoice_by_number(invoice_number)
    except InvoiceNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return detail.to_dict()


@router.get("/sales")
def list_sales(
    filters: ExportFilters = Depends(_export_filters),
    pagination: Pagination = Depends(_pagination),
    service: ExportService = Depends(get_export_service),
) -> Dict[str, Any]:
    result = service.fetch_sales_lines(filters, pagination)
    return {
        "data": [asdict(line) for line in result.data],
        "total": result.total,
        "warning": result.warning,
        "source": result.source,
    }


@router.get("/kpis")
def kpis(
    filters: ExportFilters = Depends(_export_filters),
    service: ExportService = Depends(get_export_service),
) -> Dict[str, Any]:
    return service.fetch_kpis(filters).to_dict()


@router.get("/alerts")
def alerts(
    filters: ExportFilters = Depends(_export_filters),
    service: ExportService = Depends(get_export_service),
) -> List[Dict[str, Any]]:
    return [asdict(alert) for alert in service.fetch_alerts(filters)]


@router.get("/top-clients")
def top_clients(
    filters: ExportFilters = Depends(_export_filters),
    service: ExportService = Depends(get_export_service),
) -> List[Dict[str, Any]]:
    return [asdict(client) for client in service.fetch_top_clients(filters)]
