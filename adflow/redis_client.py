"""
Board cache - kanban board payloads keyed by brand
Backed by Redis (or Upstash) when configured, process memory otherwise
"""

import fnmatch
import json
import logging
import os
import time
from typing import Any, Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

DEFAULT_BOARD_TTL = 60
BOARD_KEY_PREFIX = "board:"


class InMemoryCache:
    """Subset of the redis client API used by ``BoardCache``"""

    def __init__(self):
        # key -> (value, expires_at or None)
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and time.time() > expires_at:
            self._entries.pop(key, None)
            return False
        return True

    def get(self, key: str) -> Optional[str]:
        return self._entries[key][0] if self._live(key) else None

    def set(self, key: str, value: str, ex: Optional[int] = None):
        self._entries[key] = (value, time.time() + ex if ex else None)

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def keys(self, pattern: str):
        return [key for key in list(self._entries) if self._live(key) and fnmatch.fnmatchcase(key, pattern)]

    def flushdb(self):
        self._entries.clear()


def _connect(url: str):
    options = {
        "decode_responses": True,
        "socket_timeout": 5,
        "socket_connect_timeout": 5,
    }
    # Upstash manages its own pool
    if "upstash" not in url.lower():
        options["max_connections"] = 10
    client = redis.from_url(url, **options)
    client.ping()
    return client


class BoardCache:
    """
    Kanban board payloads per brand code.

    Cache errors are logged and behave like misses; a board is always
    recomputable from Firestore.
    """

    def __init__(self, url: Optional[str] = None):
        url = url or os.getenv("REDIS_URL") or os.getenv("UPSTASH_REDIS_URL")
        self._client = None
        if url:
            try:
                self._client = _connect(url)
                logger.info("Board cache connected to Redis")
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable ({e}), board cache falls back to memory")
        else:
            logger.warning("No REDIS_URL configured, board cache kept in memory")
        if self._client is None:
            self._client = InMemoryCache()

    @property
    def client(self):
        return self._client

    @staticmethod
    def key(brand_code: Optional[str]) -> str:
        return f"{BOARD_KEY_PREFIX}{brand_code or '*all*'}"

    def get_board(self, brand_code: Optional[str]) -> Optional[Dict[str, Any]]:
        key = self.key(brand_code)
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            logger.error(f"Board cache read failed for {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable board cache entry {key}")
            return None

    def put_board(self, brand_code: Optional[str], payload: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        key = self.key(brand_code)
        try:
            self._client.set(key, json.dumps(payload, default=str), ex=ttl or board_ttl())
            return True
        except redis.RedisError as e:
            logger.error(f"Board cache write failed for {key}: {e}")
            return False

    def invalidate(self) -> int:
        """Drop every cached board; any group write can move groups between columns."""
        try:
            keys = self._client.keys(f"{BOARD_KEY_PREFIX}*")
            return self._client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Board cache invalidation failed: {e}")
            return 0


def board_ttl() -> int:
    try:
        return int(os.getenv("BOARD_CACHE_TTL", DEFAULT_BOARD_TTL))
    except ValueError:
        return DEFAULT_BOARD_TTL


board_cache = BoardCache()
