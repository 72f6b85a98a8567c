"""
Valkey (Redis-compatible) access for sessions and public endpoint rate limits.

Thin layer over redis-py. The connection URL comes from Vault. Startup
fails fast if Valkey is unreachable; afterwards, command failures surface
as UpstreamError so requests answer 502 instead of crashing.
"""

import json
import logging
from contextlib import contextmanager

import redis

from core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


@contextmanager
def _upstream_errors(operation: str):
    try:
        yield
    except redis.RedisError as e:
        logger.error(f"Valkey {operation} failed: {e}")
        raise UpstreamError("Session store unavailable") from e


class ValkeyClient:
    """
    Key-value store holding session records and rate-limit counters.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set_json("session:abc", {"user_id": "..."}, expire_seconds=3600)
        count, ttl = client.incr_window("ratelimit:quote_view:203.0.113.7", 60)
    """

    def __init__(self, url: str):
        """
        Connect and ping.

        Raises:
            redis.ConnectionError: Valkey unreachable at startup
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def get(self, key: str) -> str | None:
        """Raw string value, None when the key is absent or expired."""
        with _upstream_errors("get"):
            return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        with _upstream_errors("set"):
            if expire_seconds is not None:
                self._client.setex(key, expire_seconds, value)
            else:
                self._client.set(key, value)

    def delete(self, key: str) -> bool:
        """True if the key existed."""
        with _upstream_errors("delete"):
            return self._client.delete(key) > 0

    def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        Increment a fixed-window counter.

        INCR, then start the TTL only if the key has none yet, in one
        MULTI/EXEC so a crash cannot leave a counter without expiry.

        Returns:
            (count after increment, remaining TTL in seconds)
        """
        with _upstream_errors("incr_window"):
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            pipe.ttl(key)
            count, _, ttl = pipe.execute()
        return count, ttl

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Stored JSON value, None when absent.

        Raises:
            ValueError: value is not valid JSON
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
