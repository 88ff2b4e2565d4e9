"""Redis access for short-lived JSON documents such as import job snapshots."""

import json
import logging
from typing import Optional, Any

import redis

from droxstock.core.config import settings

logger = logging.getLogger("droxstock.cache")


class CacheService:
    """Thin JSON-over-Redis store.

    Redis being down degrades to "nothing cached": reads return ``None`` and
    writes are dropped with a warning, so callers never see connection errors.
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None):
        self._client = client
        self.url = url or settings.REDIS_URL

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.ConnectionError as e:
            logger.warning("Redis unavailable reading %s: %s", key, e)
            return None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.setex(key, ttl_seconds, value)
        except redis.ConnectionError as e:
            logger.warning("Redis unavailable writing %s: %s", key, e)

    def get_json(self, key: str) -> Optional[Any]:
        raw = self.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        # Decimals and datetimes in import reports are stored as strings.
        self.set(key, json.dumps(value, default=str), ttl_seconds)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.ConnectionError as e:
            logger.warning("Redis unavailable deleting %s: %s", key, e)

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.ConnectionError:
            return False


cache_service = CacheService()
