"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///data/exportops.db"
    redis_url: Optional[str] = None
    rates_cache_ttl: int = 86400
    max_rows: int = 2000
    page_size: int = 50
    transit_alert_pct: float = 0.35
    min_margin_rate_pct: float = 5.0
    min_margin_amount: float = 50.0
    top_clients: int = 12

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            redis_url=os.getenv("EXPORTOPS_REDIS_URL") or None,
            rates_cache_ttl=_env_int("EXPORTOPS_RATES_CACHE_TTL", cls.rates_cache_ttl),
            max_rows=_env_int("EXPORTOPS_MAX_ROWS", cls.max_rows),
            page_size=_env_int("EXPORTOPS_PAGE_SIZE", cls.page_size),
            transit_alert_pct=_env_float("EXPORTOPS_TRANSIT_ALERT_PCT", cls.transit_alert_pct),
            min_margin_rate_pct=_env_float("EXPORTOPS_MIN_MARGIN_RATE_PCT", cls.min_margin_rate_pct),
            min_margin_amount=_env_float("EXPORTOPS_MIN_MARGIN_AMOUNT", cls.min_margin_amount),
            top_clients=_env_int("EXPORTOPS_TOP_CLIENTS", cls.top_clients),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (``get_settings.cache_clear()`` to reload)."""
    return Settings.from_env()
