"""
Typed lookup cache backed by Redis.

Entries are pydantic models stored as JSON strings. Without a configured or
reachable Redis every lookup is a miss; an entry that no longer validates
against its model is evicted and treated as a miss.
"""
from __future__ import annotations

import logging
from typing import Callable, Generic, Optional, Type, TypeVar

import redis
from pydantic import BaseModel, ValidationError

from access_nav.cache import keys
from access_nav.config import settings
from access_nav.core.models import Coordinate, WeatherSnapshot

log = logging.getLogger(__name__)

Q = TypeVar("Q")
M = TypeVar("M", bound=BaseModel)

_connection: Optional[redis.Redis] = None
_connection_tried = False


def connection() -> Optional[redis.Redis]:
    """Process-wide client for ``settings.redis_url``, connected on first use."""
    global _connection, _connection_tried
    if _connection_tried:
        return _connection
    _connection_tried = True

    if not settings.redis_url:
        log.debug("No redis_url configured, lookups are not cached")
        return None
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=3)
        client.ping()
    except (redis.RedisError, ValueError) as exc:
        log.warning("Redis unavailable at %s (%s), lookups are not cached", settings.redis_url, exc)
        return None

    log.info("Redis connected: %s", settings.redis_url)
    _connection = client
    return client


class ModelCache(Generic[Q, M]):
    """
    Maps a lookup query (place name, coordinate, ...) to a cached model.

    ``key_for`` turns the query into a Redis key. A ``ttl_s`` of zero or less
    disables writes, so a source can be made uncached from config alone.
    """

    def __init__(
        self,
        model: Type[M],
        key_for: Callable[[Q], str],
        ttl_s: int,
        client: Optional[redis.Redis] = None,
    ):
        self.model = model
        self.key_for = key_for
        self.ttl_s = ttl_s
        self.client = client

    def _redis(self) -> Optional[redis.Redis]:
        return self.client if self.client is not None else connection()

    def get(self, query: Q) -> Optional[M]:
        r = self._redis()
        if r is None:
            return None
        key = self.key_for(query)
        try:
            raw = r.get(key)
        except redis.RedisError as exc:
            log.debug("cache get %s failed: %s", key, exc)
            return None
        if raw is None:
            return None

        try:
            return self.model.model_validate_json(raw)
        except ValidationError:
            log.warning("Evicting unreadable %s entry %s", self.model.__name__, key)
            try:
                r.delete(key)
            except redis.RedisError as exc:
                log.debug("cache delete %s failed: %s", key, exc)
            return None

    def put(self, query: Q, value: M) -> None:
        if self.ttl_s <= 0:
            return
        r = self._redis()
        if r is None:
            return
        key = self.key_for(query)
        try:
            r.set(key, value.model_dump_json(), ex=self.ttl_s)
        except redis.RedisError as exc:
            log.debug("cache set %s failed: %s", key, exc)


def geocode_cache(client: Optional[redis.Redis] = None) -> ModelCache[str, Coordinate]:
    return ModelCache(Coordinate, keys.geocode, settings.ttl_geocode, client)


def weather_cache(client: Optional[redis.Redis] = None) -> ModelCache[Coordinate, WeatherSnapshot]:
    return ModelCache(WeatherSnapshot, lambda c: keys.weather(c.lat, c.lon), settings.ttl_weather, client)
