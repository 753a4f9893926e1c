"""
Redis cache for store settings.

Keys are tenant-isolated: {prefix}:tenant:{tenant_id}:{module}:{key}.
Every failure degrades to "no cache"; callers always get an answer from the DB.
"""

import logging
import json
from typing import Any, Optional, Callable, Dict
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-backed cache-aside helper with multi-tenant keys."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'pos')
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        return bool(self._enabled and self.client)

    def _build_key(self, tenant_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:tenant:{tenant_id}:{module}:{key}"

    def _serialize(self, value: Any) -> str:
        """JSON with Decimal kept as an exact string."""
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, Decimal):
                return {"__decimal__": str(obj)}
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def _deserialize(self, value: str) -> Any:
        def object_hook(dct: Dict[str, Any]) -> Any:
            if "__decimal__" in dct:
                return Decimal(dct["__decimal__"])
            return dct
        return json.loads(value, object_hook=object_hook)

    def get(self, tenant_id: int, module: str, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(tenant_id, module, key))
            if value is None:
                return None
            return self._deserialize(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, tenant_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        try:
            if ttl is None:
                ttl = current_app.config.get('CACHE_DEFAULT_TTL', 60)
            self.client.setex(self._build_key(tenant_id, module, key), ttl, self._serialize(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Delete every key of a tenant/module."""
        if not self.is_available():
            return 0
        try:
            pattern = self._build_key(tenant_id, module, "*")
            deleted_count = 0
            for key in self.client.scan_iter(match=pattern, count=100):
                self.client.delete(key)
                deleted_count += 1
            if deleted_count > 0:
                logger.info(f"[CACHE] INVALIDATE: {pattern} ({deleted_count} keys)")
            return deleted_count
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return 0

    def memoize(self, tenant_id: int, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside: return the cached value or load, store and return it."""
        cached = self.get(tenant_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        if value is not None:
            self.set(tenant_id, module, key, value, ttl)
        return value


_cache_service: Optional[CacheService] = None

def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service

def get_cache() -> CacheService:
    """Get cache service instance."""
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
