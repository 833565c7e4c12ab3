"""Shared fixtures: an in-memory store backend that can simulate schema drift."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from exportops.config import Settings
from exportops.export.models import ExportFilters
from exportops.export.sources import InvoiceQuery


class MissingRelation(Exception):
    """Mimics a PostgREST / psycopg ``42P01`` error."""

    def __init__(self, name: str):
        super().__init__(f'relation "public.{name}" does not exist')
        self.code = "42P01"


class MissingColumn(Exception):
    def __init__(self, name: str):
        super().__init__(f"column {name} does not exist")
        self.code = "42703"


class MemoryBackend:
    """Tables are lists of dicts; absent tables raise like a real store."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables or {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[str, Exception] = {}

    def _table(self, name: str) -> List[Dict[str, Any]]:
        if name in self.failures:
            raise self.failures[name]
        if name not in self.tables:
            raise MissingRelation(name)
        return self.tables[name]

    @staticmethod
    def _require_column(rows: List[Dict[str, Any]], column: str) -> None:
        if rows and all(column not in row for row in rows):
            raise MissingColumn(column)

    def select_invoices(self, query: InvoiceQuery) -> Tuple[List[Mapping[str, Any]], Optional[int]]:
        self.calls.append((query.source, query.date_column))
        rows = self._table(query.source)
        self._require_column(rows, query.date_column)
        filters = query.filters
        selected = [
            row
            for row in rows
            if (not filters.date_from or str(row.get(query.date_column) or "") >= filters.date_from)
            and (not filters.date_to or str(row.get(query.date_column) or "") <= filters.date_to)
            and (not filters.territory or filters.territory.lower() in str(row.get("territory_code") or "").lower())
            and (not filters.client_id or filters.client_id.lower() in str(row.get("client_id") or "").lower())
        ]
        selected.sort(key=lambda row: str(row.get(query.date_column) or ""), reverse=True)
        return selected[query.offset : query.offset + query.limit], len(selected)

    def select_where(self, table: str, column: str, value: Any, *, limit: int) -> List[Mapping[str, Any]]:
        rows = self._table(table)
        self._require_column(rows, column)
        return [row for row in rows if row.get(column) == value][:limit]

    def select_in(self, table: str, column: str, values: Sequence[Any], *, limit: int) -> List[Mapping[str, Any]]:
        rows = self._table(table)
        return [row for row in rows if row.get(column) in values][:limit]

    def select_table(self, table: str, *, limit: int) -> List[Mapping[str, Any]]:
        return list(self._table(table))[:limit]

    def select_sales(
        self, filters: ExportFilters, *, offset: int, limit: int
    ) -> Tuple[List[Mapping[str, Any]], Optional[int]]:
        rows = self._table("sales")
        return rows[offset : offset + limit], len(rows)


@pytest.fixture()
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def settings() -> Settings:
    return Settings(database_url="sqlite://", page_size=50, max_rows=2000)


@pytest.fixture()
def missing_relation():
    return MissingRelation


@pytest.fixture()
def missing_column():
    return MissingColumn
