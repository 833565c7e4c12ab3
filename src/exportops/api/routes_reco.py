"""Reconciliation endpoint.

  POST /v1/reconcile → cases, risk rows and aggregates for posted invoices / cost documents
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from exportops.config import get_settings
from exportops.observability import current_run_id
from exportops.reco.models import RiskThresholds
from exportops.reco.report import reconciliation_report
from exportops.reco.rules import DEFAULT_COVERAGE_THRESHOLD

router = APIRouter(prefix="/v1", tags=["reconciliation"])


class ReconcileRequest(BaseModel):
    """Invoices and cost documents as imported (camelCase or snake_case keys)."""

    invoices: List[Dict[str, Any]] = Field(default_factory=list)
    cost_docs: List[Dict[str, Any]] = Field(default_factory=list)
    min_margin_rate_pct: Optional[float] = None
    min_margin_amount: Optional[float] = None
    coverage_threshold: Optional[float] = Field(default=None, ge=0)
    query: Optional[str] = None
    known_destinations: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


@router.post("/reconcile")
def reconcile_documents(request: ReconcileRequest) -> Dict[str, Any]:
    settings = get_settings()
    thresholds = RiskThresholds(
        min_margin_rate_pct=(
            settings.min_margin_rate_pct if request.min_margin_rate_pct is None else request.min_margin_rate_pct
        ),
        min_margin_amount=(
            settings.min_margin_amount if request.min_margin_amount is None else request.min_margin_amount
        ),
    )
    return reconciliation_report(
        request.invoices,
        request.cost_docs,
        thresholds=thresholds,
        coverage_threshold=(
            DEFAULT_COVERAGE_THRESHOLD if request.coverage_threshold is None else request.coverage_threshold
        ),
        query=request.query,
        known_destinations=request.known_destinations,
        run_id=current_run_id(),
    )
