"""Command-line interface for exportops."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, TextIO

import click

from ..calc.breakdown import compute_export_breakdown
from ..calc.estimator import estimate_export_costs
from ..calc.types import BreakdownFilters
from ..config import get_settings
from ..export.mapper import (
    cost_lines_from_rows,
    om_rate_from_row,
    rates_context_from_rows,
    sales_lines_from_rows,
    vat_rate_from_row,
)
from ..reco.models import RiskThresholds
from ..reco.report import reconciliation_report
from ..reco.rules import DEFAULT_COVERAGE_THRESHOLD


def _load_json(handle: Optional[TextIO]) -> Dict[str, Any]:
    if handle is None:
        return {}
    try:
        payload = json.load(handle)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{handle.name}: invalid JSON ({exc.msg})") from exc
    if not isinstance(payload, dict):
        raise click.BadParameter(f"{handle.name}: expected a JSON object")
    return payload


def _load_filters(handle: TextIO, filters: Any) -> Optional[BreakdownFilters]:
    if not filters:
        return None
    if not isinstance(filters, dict):
        raise click.BadParameter(f"{handle.name}: filters must be a JSON object")
    try:
        return BreakdownFilters(**filters)
    except TypeError as exc:
        raise click.BadParameter(f"{handle.name}: unknown filter in {sorted(filters)}") from exc


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
def cli(verbose: bool) -> None:
    """Export cost, margin and reconciliation tools."""

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command("estimate")
@click.argument("base", type=float)
@click.option("--territory", default=None, help="Territory code (e.g. GP, MQ, RE).")
@click.option(
    "--rates",
    "rates_file",
    type=click.File("r"),
    default=None,
    help="JSON object with vat_rates, om_rates, octroi_rates and extra_rules arrays.",
)
def estimate(base: float, territory: Optional[str], rates_file: Optional[TextIO]) -> None:
    """Estimate VAT, Octroi de Mer and extra charges on BASE."""

    tables = _load_json(rates_file)
    context = rates_context_from_rows(
        tables.get("vat_rates") or [],
        tables.get("om_rates") or [],
        tables.get("octroi_rates") or [],
        tables.get("extra_rules") or [],
    )
    _emit(estimate_export_costs(base, territory, context).to_dict())


@cli.command("breakdown")
@click.argument("input_file", type=click.File("r"))
def breakdown(input_file: TextIO) -> None:
    """Aggregate margins from a JSON file of sales_lines, cost_lines, vat_rates, om_rates and filters."""

    payload = _load_json(input_file)
    result = compute_export_breakdown(
        sales_lines_from_rows(payload.get("sales_lines") or []),
        cost_lines_from_rows(payload.get("cost_lines") or []),
        [vat_rate_from_row(row) for row in payload.get("vat_rates") or []],
        [om_rate_from_row(row) for row in payload.get("om_rates") or []],
        _load_filters(input_file, payload.get("filters")),
    )
    _emit(result.to_dict())


@cli.command("reconcile")
@click.argument("input_file", type=click.File("r"))
@click.option("--min-margin-rate", type=float, default=None, help="Low-margin rate threshold (%).")
@click.option("--min-margin-amount", type=float, default=None, help="Low-margin amount threshold.")
@click.option(
    "--coverage-threshold",
    type=float,
    default=DEFAULT_COVERAGE_THRESHOLD,
    show_default=True,
    help="Transit coverage below which a case is flagged.",
)
@click.option("--query", default=None, help="Filter risk rows on invoice, client, destination or incoterm.")
def reconcile(
    input_file: TextIO,
    min_margin_rate: Optional[float],
    min_margin_amount: Optional[float],
    coverage_threshold: float,
    query: Optional[str],
) -> None:
    """Reconcile the invoices and cost_docs of a JSON file and report risks."""

    payload = _load_json(input_file)
    settings = get_settings()
    thresholds = RiskThresholds(
        min_margin_rate_pct=settings.min_margin_rate_pct if min_margin_rate is None else min_margin_rate,
        min_margin_amount=settings.min_margin_amount if min_margin_amount is None else min_margin_amount,
    )
    _emit(
        reconciliation_report(
            payload.get("invoices") or [],
            payload.get("cost_docs") or payload.get("costDocs") or [],
            thresholds=thresholds,
            coverage_threshold=coverage_threshold,
            query=query,
        )
    )


@cli.command("init-db")
@click.option("--database-url", default=None, help="Overrides DATABASE_URL.")
def init_db_command(database_url: Optional[str]) -> None:
    """Create the reference and invoice tables."""

    from ..db.session import init_db

    url = database_url or get_settings().database_url
    init_db(url)
    click.echo(f"Schema created on {url}")


if __name__ == "__main__":
    cli()
