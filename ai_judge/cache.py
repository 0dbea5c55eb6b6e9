"""
Judgment cache
==============

Read-through cache for the current judgment of a case, backed by Redis.

The cache is optional: when REDIS_URL is unset or the server cannot be
reached every call degrades to a miss. Errors are logged, never raised.
"""

import hashlib
import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "case:judgment:"
DEFAULT_TTL_SECONDS = 3600


class JudgmentCache:
    def __init__(self, redis_url: Optional[str] = None, client=None, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self._client = client
        self._unavailable = False

    @property
    def client(self):
        """Lazy-load Redis client; a failed connection is not retried"""
        if self._client is None and self.redis_url and not self._unavailable:
            try:
                self._client = redis.from_url(self.redis_url, decode_responses=True, socket_connect_timeout=2)
                self._client.ping()
                logger.info("Redis cache connected")
            except (redis.RedisError, ValueError) as e:
                logger.warning(f"Redis connection failed - continuing without cache: {e}")
                self._client = None
                self._unavailable = True
        return self._client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def key_for(case_id: str) -> str:
        digest = hashlib.sha256(json.dumps({"caseId": case_id}).encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}{digest}"

    def get(self, key: str) -> Optional[Any]:
        client = self.client
        if client is None:
            return None
        try:
            value = client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        client = self.client
        if client is None:
            return
        try:
            client.setex(key, ttl_seconds or self.ttl_seconds, json.dumps(value))
        except redis.RedisError as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    def delete(self, key: str) -> None:
        client = self.client
        if client is None:
            return
        try:
            client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.warning(f"Cache close failed: {e}")
            self._client = None
