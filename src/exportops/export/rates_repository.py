"""Reference rate tables, loaded once and reused.

:class:`BackendRatesRepository` reads ``vat_rates``, ``om_rates``,
``octroi_rates`` and ``tax_rules_extra`` in parallel on first use and keeps
the typed result for the lifetime of the repository (``invalidate()`` forces
a reload).  A missing table is not an error: it loads as empty and is named
in the returned warning.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import redis

from exportops.caching.redis_client import RedisClient
from exportops.calc.estimator import ALL_RATE_TABLES, RatesContext
from exportops.calc.rates import EXTRA_RULES_TABLE, OCTROI_TABLE, OM_TABLE, VAT_TABLE
from exportops.calc.validators import is_missing_table_error
from exportops.export.mapper import rates_context_from_rows
from exportops.export.sources import InvoiceBackend

logger = logging.getLogger(__name__)

RATE_TABLE_LIMIT = 5000


@dataclass(frozen=True)
class RatesLoad:
    context: RatesContext
    warning: Optional[str] = None


class RatesRepository(Protocol):
    def load(self) -> RatesLoad:
        ...


class StaticRatesRepository:
    """Fixed in-memory rates, for tests and offline runs."""

    def __init__(self, context: Optional[RatesContext] = None, warning: Optional[str] = None):
        self._load = RatesLoad(context=context or RatesContext(), warning=warning)

    def load(self) -> RatesLoad:
        return self._load


def missing_tables_warning(missing: List[str]) -> Optional[str]:
    return f"Tables manquantes: {', '.join(missing)}" if missing else None


class BackendRatesRepository:
    """Lazily loads rate tables from an :class:`InvoiceBackend`."""

    def __init__(
        self,
        backend: InvoiceBackend,
        *,
        cache: Optional[RedisClient] = None,
        cache_namespace: str = "default",
        cache_ttl: int = 86400,
        limit: int = RATE_TABLE_LIMIT,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._cache_namespace = cache_namespace
        self._cache_ttl = cache_ttl
        self._limit = limit
        self._lock = threading.Lock()
        self._loaded: Optional[RatesLoad] = None

    def load(self) -> RatesLoad:
        with self._lock:
            if self._loaded is None:
                tables, missing = self._read_tables()
                context = rates_context_from_rows(
                    tables.get(VAT_TABLE, ()),
                    tables.get(OM_TABLE, ()),
                    tables.get(OCTROI_TABLE, ()),
                    tables.get(EXTRA_RULES_TABLE, ()),
                )
                self._loaded = RatesLoad(context=context, warning=missing_tables_warning(missing))
                logger.info(
                    "Rates loaded: vat=%d om=%d octroi=%d extra=%d missing=%s",
                    len(context.vat_rates), len(context.om_rates),
                    len(context.octroi_rates), len(context.extra_rules), missing,
                )
            return self._loaded

    def cache_status(self) -> Optional[bool]:
        """``None`` without a cache, else whether Redis answers."""
        return None if self._cache is None else self._cache.ping()

    def invalidate(self) -> None:
        with self._lock:
            self._loaded = None
        if self._cache is not None:
            try:
                self._cache.invalidate_rate_tables(self._cache_namespace)
            except redis.exceptions.RedisError:
                logger.warning("Could not invalidate cached rate tables", exc_info=True)

    # -- internals ---------------------------------------------------------

    def _read_tables(self) -> Tuple[Dict[str, List[Mapping[str, Any]]], List[str]]:
        cached = self._from_cache()
        if cached is not None:
            return cached

        with ThreadPoolExecutor(max_workers=len(ALL_RATE_TABLES)) as pool:
            futures = {table: pool.submit(self._fetch_table, table) for table in ALL_RATE_TABLES}
            results = {table: future.result() for table, future in futures.items()}

        tables = {table: rows for table, rows in results.items() if rows is not None}
        missing = [table for table in ALL_RATE_TABLES if results[table] is None]
        self._to_cache(tables, missing)
        return tables, missing

    def _fetch_table(self, table: str) -> Optional[List[Mapping[str, Any]]]:
        try:
            return [dict(row) for row in self._backend.select_table(table, limit=self._limit)]
        except Exception as exc:
            if is_missing_table_error(exc):
                logger.warning("Reference table %s is missing; its rates default to 0%%", table)
                return None
            raise

    def _from_cache(self) -> Optional[Tuple[Dict[str, List[Mapping[str, Any]]], List[str]]]:
        if self._cache is None:
            return None
        try:
            payload = self._cache.get_rate_tables(self._cache_namespace)
        except redis.exceptions.RedisError:
            logger.warning("Rate cache unavailable, reading the store", exc_info=True)
            return None
        if payload is None:
            return None
        return payload["tables"], list(payload.get("missing") or [])

    def _to_cache(self, tables: Dict[str, List[Mapping[str, Any]]], missing: List[str]) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set_rate_tables(
                {"tables": tables, "missing": missing},
                namespace=self._cache_namespace,
                ttl=self._cache_ttl,
            )
        except redis.exceptions.RedisError:
            logger.warning("Could not cache rate tables", exc_info=True)
