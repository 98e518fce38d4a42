"""
Redis storage connector.
"""

import json
from typing import Any, Dict, Optional

import redis

from shared.logging import get_logger

from .connectors import StorageConnector


class RedisStorageConnector(StorageConnector):
    """Stores sticky assignments as JSON strings in Redis."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        prefix: str = "decision:",
        ttl_seconds: Optional[int] = None,
        client: Optional[redis.Redis] = None
    ):
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("decision_engine.storage.redis")

        if client is not None:
            self.redis = client
        elif redis_url:
            self.redis = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        else:
            raise ValueError("redis_url or client is required")

    def _key(self, feature_key: str, user_id: str) -> str:
        return f"{self.prefix}{self.make_key(feature_key, user_id)}"

    def get(self, feature_key: str, user_id: str) -> Optional[Dict[str, Any]]:
        cache_key = self._key(feature_key, user_id)
        cached_data = self.redis.get(cache_key)
        if not cached_data:
            return None

        if isinstance(cached_data, bytes):
            cached_data = cached_data.decode("utf-8")
        data = json.loads(cached_data)
        self.logger.debug("Storage hit", cache_key=cache_key)
        return data if isinstance(data, dict) else None

    def set(self, data: Dict[str, Any]) -> bool:
        cache_key = self._key(data["feature_key"], data["user_id"])
        payload = json.dumps(data)
        if self.ttl_seconds:
            self.redis.setex(cache_key, self.ttl_seconds, payload)
        else:
            self.redis.set(cache_key, payload)
        self.logger.debug("Storage write", cache_key=cache_key, ttl_seconds=self.ttl_seconds)
        return True

    def close(self):
        self.redis.close()
