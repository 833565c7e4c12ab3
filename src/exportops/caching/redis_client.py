"""Redis cache for reference rate tables.

Lets several API workers share one load of the rate tables instead of each
hitting the store on first use.

Cache Keys:
- exportops:rates:{namespace} → JSON ``{"tables": {...}, "missing": [...]}`` (TTL: 24h)
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

import redis


class RedisClient:
    """Redis client for shared rate-table caching."""

    def __init__(self, url: Optional[str] = None, *, client: Optional[redis.Redis] = None):
        self.url = url or os.getenv("EXPORTOPS_REDIS_URL", "redis://localhost:6379/0")
        self._client = client or redis.from_url(
            self.url,
            decode_responses=True,  # Auto-decode strings
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )

    @staticmethod
    def rates_key(namespace: str = "default") -> str:
        return f"exportops:rates:{namespace}"

    # -------------------------------------------------------------------------
    # Rate tables
    # -------------------------------------------------------------------------

    def get_rate_tables(self, namespace: str = "default") -> Optional[Dict[str, Any]]:
        """Retrieve cached rate tables.

        Returns:
            ``{"tables": {table: rows}, "missing": [table, ...]}`` or None on miss
        """
        data = self._client.get(self.rates_key(namespace))
        if data:
            try:
                payload = json.loads(data)
            except (json.JSONDecodeError, TypeError):
                return None
            if isinstance(payload, dict) and isinstance(payload.get("tables"), dict):
                return payload
        return None

    def set_rate_tables(
        self,
        payload: Dict[str, Any],
        namespace: str = "default",
        ttl: int = 86400,
    ) -> None:
        """Cache rate tables with a TTL (default: 24 hours).

        Non-JSON values coming from the store (Decimal, date) are stored as
        strings; the mappers coerce them back.
        """
        self._client.setex(self.rates_key(namespace), ttl, json.dumps(payload, default=str))

    def invalidate_rate_tables(self, namespace: str = "default") -> None:
        self._client.delete(self.rates_key(namespace))

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self._client.ping())
        except redis.exceptions.ConnectionError:
            return False
