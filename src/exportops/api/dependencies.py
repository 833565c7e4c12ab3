from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Request

from exportops.caching.redis_client import RedisClient
from exportops.config import Settings
from exportops.db.backend import SqlAlchemyBackend
from exportops.db.session import get_engine
from exportops.export.rates_repository import BackendRatesRepository
from exportops.export.service import ExportService

logger = logging.getLogger(__name__)


def build_export_service(settings: Settings) -> ExportService:
    """Wire the store backend, the optional Redis rate cache and the service."""

    backend = SqlAlchemyBackend(get_engine(settings.database_url))
    cache: Optional[RedisClient] = RedisClient(settings.redis_url) if settings.redis_url else None
    rates = BackendRatesRepository(backend, cache=cache, cache_ttl=settings.rates_cache_ttl)
    return ExportService(backend, rates, settings=settings)


def get_export_service(request: Request) -> ExportService:
    service = getattr(request.app.state, "export_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Store backend unavailable")
    return service


def get_optional_export_service(request: Request) -> Optional[ExportService]:
    return getattr(request.app.state, "export_service", None)
