"""Rate limiting for public quote endpoints.

Fixed-window counters in Valkey keyed by bucket and caller address, so
every process behind the load balancer shares the same counts.
"""

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError


class RateLimiter:
    """Per-caller request limits using Valkey."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.rate_limit_window_seconds

    def _key(self, bucket: str, caller: str) -> str:
        """Generate rate limit key for a bucket (e.g. 'quote_accept') and caller address."""
        return f"{self.KEY_PREFIX}{bucket}:{caller}"

    def check_rate_limit(self, bucket: str, caller: str) -> None:
        """Count one request and reject it if the window is full.

        The window starts at the first request and does not slide.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        count, ttl = self._valkey.incr_window(self._key(bucket, caller), self._window_seconds)

        if count > self._config.rate_limit_attempts:
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

    def get_remaining_attempts(self, bucket: str, caller: str) -> int:
        """Get remaining requests in the current window."""
        current = self._valkey.get(self._key(bucket, caller))

        if current is None:
            return self._config.rate_limit_attempts

        remaining = self._config.rate_limit_attempts - int(current)
        return max(remaining, 0)

    def reset_rate_limit(self, bucket: str, caller: str) -> None:
        self._valkey.delete(self._key(bucket, caller))
