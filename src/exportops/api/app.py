from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from exportops import __version__
from exportops.api.dependencies import build_export_service
from exportops.api.routes_export import router as export_router
from exportops.api.routes_reco import router as reco_router
from exportops.config import get_settings
from exportops.observability import bind_run_id, current_run_id, log_event, reset_run_id

# -----------------------------------------------------------------------------
# App setup
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        app.state.export_service = build_export_service(get_settings())
    except Exception:  # pragma: no cover - driver or URL problems surface as 503s
        logger.exception("Export service bootstrap failed")
        app.state.export_service = None
    yield
    app.state.export_service = None


app = FastAPI(title="exportops API", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(export_router)
app.include_router(reco_router)


@app.middleware("http")
async def attach_run_id(request: Request, call_next):
    token = bind_run_id(request.headers.get("X-Run-ID"))
    run_id = current_run_id() or ""
    log_event("request.start", log=logger, path=str(request.url.path))
    try:
        response = await call_next(request)
        response.headers["X-Run-ID"] = run_id
        return response
    finally:
        log_event("request.end", log=logger, path=str(request.url.path))
        reset_run_id(token)


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@app.get("/v1/health")
def health(request: Request) -> Dict[str, Any]:
    service = getattr(request.app.state, "export_service", None)
    cache_status = getattr(service.rates, "cache_status", None) if service is not None else None
    return {
        "ok": True,
        "version": __version__,
        "store": service is not None,
        "rates_cache": cache_status() if cache_status else None,
    }
