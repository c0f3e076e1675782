"""Per-provider token bucket with 429 backoff.

Hey future me - SpotifyClient and AppleMusicClient each own one of these. Every API
call does ``async with limiter:`` (one token per request, sleeps when the bucket is
dry). On a 429 the client calls handle_rate_limit_response(): Retry-After wins when
the provider sent one, otherwise the wait doubles per consecutive 429. The client
calls reset_backoff() once a response comes back that is not a 429.

Limiters are built by build_sync_components() and injected, there is no module-level
instance. A sync sweep touches each provider only a couple of times per list, so the
defaults mostly matter when a sweep has hundreds of due lists.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Bucket and backoff settings of one provider."""

    max_tokens: int = 10
    refill_rate: float = 2.0  # tokens per second
    # Upper bound for any single wait, Retry-After included
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


def parse_retry_after(value: str | None) -> int | None:
    """Seconds from a Retry-After header, None when absent or not a number.

    Both providers send delta-seconds. An HTTP-date falls back to our own backoff.
    """
    if not value:
        return None
    try:
        return max(0, int(value.strip()))
    except ValueError:
        logger.debug(f"Ignoring non-numeric Retry-After header: {value!r}")
        return None


class RateLimiter:
    """Token bucket shared by every request to one provider."""

    def __init__(self, config: RateLimiterConfig | None = None, name: str = "default") -> None:
        self.config = config or RateLimiterConfig()
        self.name = name
        self._tokens = float(self.config.max_tokens)
        self._last_refill = time.monotonic()
        self._current_backoff = self.config.initial_backoff_seconds
        self._lock = asyncio.Lock()

    # Spotify documents a rolling 30s window without exact numbers. Their Retry-After
    # can be several minutes long and must be honored in full.
    @classmethod
    def for_spotify(cls) -> "RateLimiter":
        return cls(
            RateLimiterConfig(max_tokens=10, refill_rate=2.0, max_backoff_seconds=600.0),
            name="spotify",
        )

    # Apple publishes no limits at all. A top songs sync is one or two calls per list.
    @classmethod
    def for_apple_music(cls) -> "RateLimiter":
        return cls(
            RateLimiterConfig(max_tokens=5, refill_rate=1.0, max_backoff_seconds=120.0),
            name="apple_music",
        )

    def _refill(self) -> None:
        now = time.monotonic()
        earned = (now - self._last_refill) * self.config.refill_rate
        self._tokens = min(float(self.config.max_tokens), self._tokens + earned)
        self._last_refill = now

    @property
    def available_tokens(self) -> float:
        """Tokens in the bucket right now."""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_time = (1.0 - self._tokens) / self.config.refill_rate

            # Sleep outside the lock, other callers need it to refill
            logger.debug(f"{self.name} bucket empty, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Sleep after a 429 and return how long we waited."""
        async with self._lock:
            wait_time = float(retry_after) if retry_after is not None else self._current_backoff
            wait_time = min(wait_time, self.config.max_backoff_seconds)
            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            # Drain the bucket so concurrent callers for this provider hold off too
            self._tokens = 0.0

        logger.warning(
            f"{self.name} answered 429, waiting {wait_time:.1f}s "
            f"({'Retry-After' if retry_after is not None else 'backoff'})"
        )
        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        return None


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "parse_retry_after",
]
