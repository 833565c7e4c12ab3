"""Candidate invoice sources and the fallback loop that walks them.

Deployments sit at different schema versions: newer ones expose the
enriched view ``v_sales_invoices_enriched``, older ones only the raw
``sales_invoices`` table, and the date column has been renamed over time.
Sources and date columns are tried in order; a missing column moves on to
the next date column, a missing relation moves on to the next source, and
any other error is raised unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)

from exportops.calc.validators import is_missing_column_error, is_missing_relation_error
from exportops.export.models import ExportFilters

logger = logging.getLogger(__name__)

T = TypeVar("T")
Row = Mapping[str, Any]

DATE_COLUMNS: Tuple[str, ...] = ("invoice_date", "date", "created_at")


@dataclass(frozen=True)
class InvoiceSource:
    name: str
    date_columns: Tuple[str, ...] = DATE_COLUMNS


INVOICE_SOURCES: Tuple[InvoiceSource, ...] = (
    InvoiceSource("v_sales_invoices_enriched"),
    InvoiceSource("sales_invoices"),
)


@dataclass(frozen=True)
class InvoiceQuery:
    """One paginated, filtered read against one source."""

    source: str
    date_column: str
    filters: ExportFilters = field(default_factory=ExportFilters)
    offset: int = 0
    limit: int = 50


class InvoiceBackend(Protocol):
    """Read-only access to the relational store.

    Implementations raise the store's own exceptions;
    :mod:`exportops.calc.validators` decides which of them mean schema drift.
    """

    def select_invoices(self, query: InvoiceQuery) -> Tuple[List[Row], Optional[int]]:
        ...

    def select_where(self, table: str, column: str, value: Any, *, limit: int) -> List[Row]:
        ...

    def select_in(self, table: str, column: str, values: Sequence[Any], *, limit: int) -> List[Row]:
        ...

    def select_table(self, table: str, *, limit: int) -> List[Row]:
        ...

    def select_sales(
        self, filters: ExportFilters, *, offset: int, limit: int
    ) -> Tuple[List[Row], Optional[int]]:
        ...


@dataclass
class SourceOutcome(Generic[T]):
    """Result of :func:`fetch_from_sources`.

    ``source`` is ``None`` when no candidate produced an accepted result.
    ``missing`` lists the sources skipped because they are absent.
    """

    result: Optional[T] = None
    source: Optional[str] = None
    date_column: Optional[str] = None
    missing: List[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.source is None

    @property
    def all_missing(self) -> bool:
        return self.exhausted and bool(self.missing)


def fetch_from_sources(
    sources: Sequence[InvoiceSource],
    run: Callable[[InvoiceSource, Optional[str]], T],
    *,
    use_date_columns: bool = True,
    accept: Optional[Callable[[T], bool]] = None,
) -> SourceOutcome[T]:
    """Run *run* against each candidate until one succeeds.

    With ``use_date_columns`` the call is retried per candidate date column.
    A result rejected by *accept* moves to the next source without marking
    the current one missing.
    """
    outcome: SourceOutcome[T] = SourceOutcome()
    for source in sources:
        columns: Sequence[Optional[str]] = source.date_columns if use_date_columns else (None,)
        source_missing = True
        for date_column in columns:
            try:
                result = run(source, date_column)
            except Exception as exc:
                if is_missing_column_error(exc):
                    logger.info("Source %s: column missing (%s), trying next", source.name, date_column)
                    continue
                if is_missing_relation_error(exc):
                    logger.info("Source %s is absent, falling back", source.name)
                    break
                raise
            source_missing = False
            if accept is not None and not accept(result):
                break
            outcome.result = result
            outcome.source = source.name
            outcome.date_column = date_column
            return outcome
        if source_missing:
            outcome.missing.append(source.name)
    if outcome.missing:
        logger.warning("No invoice source available among %s", [s.name for s in sources])
    return outcome
