"""SQLAlchemy Core implementation of :class:`InvoiceBackend`.

Tables are addressed by name with ``table()`` / ``column()`` rather than via
the ORM models, since the candidate sources include views that may or may
not exist.  The store's exceptions propagate untouched; classifying them is
the caller's job.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, literal_column, or_, select, table
from sqlalchemy import column as sa_column
from sqlalchemy.engine import Engine
from sqlalchemy.sql import Select

from exportops.export.models import ExportFilters
from exportops.export.sources import InvoiceQuery

logger = logging.getLogger(__name__)

SALES_TABLE = "sales"
SALES_DATE_COLUMN = "date"


def _like(value: str) -> str:
    return f"%{value}%"


class SqlAlchemyBackend:
    """Read-only queries, one connection per call."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -- helpers -----------------------------------------------------------

    def _rows(self, stmt: Select) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def _page(self, stmt: Select, order_column: str, offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        count_stmt = select(func.count()).select_from(stmt.subquery())
        page_stmt = stmt.order_by(sa_column(order_column).desc()).offset(offset).limit(limit)
        with self.engine.connect() as conn:
            rows = [dict(row._mapping) for row in conn.execute(page_stmt)]
            total = conn.execute(count_stmt).scalar_one()
        logger.debug("Selected %d/%d rows (order by %s)", len(rows), total, order_column)
        return rows, int(total)

    @staticmethod
    def _select_all(name: str) -> Select:
        return select(literal_column("*")).select_from(table(name))

    # -- InvoiceBackend ----------------------------------------------------

    def select_invoices(self, query: InvoiceQuery) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        filters = query.filters
        date_col = sa_column(query.date_column)
        stmt = self._select_all(query.source)
        if filters.date_from:
            stmt = stmt.where(date_col >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(date_col <= filters.date_to)
        if filters.territory:
            stmt = stmt.where(sa_column("territory_code").ilike(_like(filters.territory)))
        if filters.client_id:
            stmt = stmt.where(sa_column("client_id").ilike(_like(filters.client_id)))
        if filters.invoice_number:
            stmt = stmt.where(sa_column("invoice_number").ilike(_like(filters.invoice_number)))
        if filters.search:
            pattern = _like(filters.search)
            stmt = stmt.where(
                or_(
                    sa_column("invoice_number").ilike(pattern),
                    sa_column("client_id").ilike(pattern),
                    sa_column("territory_code").ilike(pattern),
                )
            )
        return self._page(stmt, query.date_column, query.offset, query.limit)

    def select_where(self, table_name: str, column_name: str, value: Any, *, limit: int) -> List[Dict[str, Any]]:
        stmt = self._select_all(table_name).where(sa_column(column_name) == value).limit(limit)
        return self._rows(stmt)

    def select_in(
        self, table_name: str, column_name: str, values: Sequence[Any], *, limit: int
    ) -> List[Dict[str, Any]]:
        if not values:
            return []
        stmt = self._select_all(table_name).where(sa_column(column_name).in_(list(values))).limit(limit)
        return self._rows(stmt)

    def select_table(self, table_name: str, *, limit: int) -> List[Dict[str, Any]]:
        return self._rows(self._select_all(table_name).limit(limit))

    def select_sales(
        self, filters: ExportFilters, *, offset: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        date_col = sa_column(SALES_DATE_COLUMN)
        stmt = self._select_all(SALES_TABLE)
        if filters.date_from:
            stmt = stmt.where(date_col >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(date_col <= filters.date_to)
        if filters.territory:
            stmt = stmt.where(sa_column("market_zone").ilike(_like(filters.territory)))
        if filters.client_id:
            stmt = stmt.where(sa_column("client_id").ilike(_like(filters.client_id)))
        if filters.invoice_number:
            stmt = stmt.where(sa_column("invoice_number").ilike(_like(filters.invoice_number)))
        return self._page(stmt, SALES_DATE_COLUMN, offset, limit)
