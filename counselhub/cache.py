"""
Redis read-through cache for list and detail reads.

Keys are ``<scope>:<entity id or 'all'>:<params digest>``. Writes never update
cached values; they drop every key under the scopes registered for the
mutated entity type, so the next read recomputes from the database.
"""
import hashlib
import json
import logging
import time
from typing import Any, Callable, Iterable, Optional

import redis

from counselhub.core import config

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Get or create the shared Redis client."""
    global redis_client

    if redis_client is None:
        redis_client = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=config.CACHE_SOCKET_TIMEOUT_SECONDS,
            socket_timeout=config.CACHE_SOCKET_TIMEOUT_SECONDS,
        )
    return redis_client


class CacheScope:
    APPOINTMENT = "appointment"
    STUDENT_APPOINTMENTS = "student_appointments"
    COUNSELOR_APPOINTMENTS = "counselor_appointments"
    COUNSELOR_STATS = "counselor_stats"
    COUNSELOR_SLOTS = "counselor_slots"
    COUNSELOR_DIRECTORY = "counselor_directory"
    ADMIN_APPOINTMENTS = "admin_appointments"
    ADMIN_ANALYTICS = "admin_analytics"


def _params_digest(params: Optional[dict]) -> str:
    cleaned = {name: value for name, value in (params or {}).items() if value is not None}
    payload = json.dumps(cleaned, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def build_key(scope: str, entity_id: Any = None, params: Optional[dict] = None) -> str:
    """Build a cache key; ``None`` params are ignored so omitted filters share a key."""
    entity = "all" if entity_id is None else str(entity_id)
    return f"{scope}:{entity}:{_params_digest(params)}"


def scope_pattern(scope: str, entity_id: Any = None) -> str:
    """Glob matching every key under ``scope`` (optionally narrowed to one entity)."""
    if entity_id is None:
        return f"{scope}:*"
    return f"{scope}:{entity_id}:*"


class Cache:
    """Redis cache wrapper with JSON serialization.

    Store failures are logged and treated as a miss (reads) or a no-op
    (writes); the database stays the source of truth. After a connection
    failure the store is skipped for ``CACHE_RETRY_AFTER_SECONDS``.
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client
        self.unavailable_until = 0.0

    def _get_client(self) -> Optional[redis.Redis]:
        if not config.CACHE_ENABLED:
            return None
        if time.monotonic() < self.unavailable_until:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except redis.RedisError as exc:
                logger.warning("Redis cache unavailable: %s", exc)
                self._back_off(exc)
                return None
        return self.redis_client

    def _back_off(self, exc: Exception) -> None:
        if not isinstance(exc, (redis.ConnectionError, redis.TimeoutError)):
            return
        self.unavailable_until = time.monotonic() + config.CACHE_RETRY_AFTER_SECONDS
        logger.warning("Redis unreachable; bypassing cache for %ss", config.CACHE_RETRY_AFTER_SECONDS)

    def get(self, key: str) -> Optional[Any]:
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
        except redis.RedisError as exc:
            logger.error("Cache get error for %s: %s", key, exc)
            self._back_off(exc)
            return None

        if value is None:
            logger.debug("Cache MISS: %s", key)
            return None

        try:
            decoded = json.loads(value)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            self.delete(key)
            return None
        logger.debug("Cache HIT: %s", key)
        return decoded

    def set(self, key: str, value: Any, ttl: int) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.set(key, json.dumps(value), ex=ttl)
        except (redis.RedisError, TypeError) as exc:
            logger.error("Cache set error for %s: %s", key, exc)
            self._back_off(exc)
            return False
        logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)
        return True

    def delete(self, key: str) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(key)
        except redis.RedisError as exc:
            logger.error("Cache delete error for %s: %s", key, exc)
            self._back_off(exc)
            return False
        logger.debug("Cache DELETE: %s", key)
        return True

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern (e.g. ``'appointment:12:*'``)."""
        client = self._get_client()
        if not client:
            return 0

        try:
            keys = list(client.scan_iter(match=pattern, count=500))
            if not keys:
                return 0
            deleted = client.delete(*keys)
        except redis.RedisError as exc:
            logger.error("Cache delete pattern error for %s: %s", pattern, exc)
            self._back_off(exc)
            return 0
        logger.debug("Cache DELETE pattern: %s (%s keys)", pattern, deleted)
        return deleted

    def get_or_compute(self, key: str, ttl: int, compute: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        ``None`` results are not stored. Concurrent misses all recompute.
        """
        cached_value = self.get(key)
        if cached_value is not None:
            return cached_value

        value = compute()
        if value is not None:
            self.set(key, value, ttl)
        return value


# Global cache instance
cache = Cache()


_invalidation_registry: dict[str, Callable[[Any], Iterable[str]]] = {}


def register_invalidation(entity_type: str):
    """Register the function yielding the key patterns to drop when ``entity_type`` changes."""
    def decorator(func: Callable[[Any], Iterable[str]]):
        _invalidation_registry[entity_type] = func
        return func
    return decorator


def invalidation_patterns(entity_type: str, entity: Any) -> list[str]:
    try:
        patterns_for = _invalidation_registry[entity_type]
    except KeyError:
        raise KeyError(f"No cache invalidation registered for '{entity_type}'") from None
    return list(patterns_for(entity))


def invalidate(entity_type: str, entity: Any) -> int:
    """Drop every cached read that a change to ``entity`` could have made stale."""
    return sum(cache.delete_pattern(pattern) for pattern in invalidation_patterns(entity_type, entity))


@register_invalidation("appointment")
def _appointment_patterns(appointment: Any) -> Iterable[str]:
    yield scope_pattern(CacheScope.APPOINTMENT, appointment.id)
    yield scope_pattern(CacheScope.STUDENT_APPOINTMENTS, appointment.student_id)
    yield scope_pattern(CacheScope.COUNSELOR_APPOINTMENTS, appointment.counselor_id)
    yield scope_pattern(CacheScope.COUNSELOR_STATS, appointment.counselor_id)
    yield scope_pattern(CacheScope.COUNSELOR_SLOTS, appointment.counselor_id)
    yield scope_pattern(CacheScope.ADMIN_APPOINTMENTS)
    yield scope_pattern(CacheScope.ADMIN_ANALYTICS)


@register_invalidation("counselor_profile")
def _counselor_profile_patterns(profile: Any) -> Iterable[str]:
    yield scope_pattern(CacheScope.COUNSELOR_DIRECTORY)
    # appointment reads embed the counselor's profile
    yield scope_pattern(CacheScope.APPOINTMENT)
    yield scope_pattern(CacheScope.STUDENT_APPOINTMENTS)
    yield scope_pattern(CacheScope.COUNSELOR_APPOINTMENTS)
    yield scope_pattern(CacheScope.ADMIN_APPOINTMENTS)
