"""Request throttling: fixed windows, token buckets and a self-adjusting limiter."""

from __future__ import annotations

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """Hands out a fixed number of permits per time window.

    Permits taken during a window are all restored once the window has
    elapsed. ``window`` is given in seconds.
    """

    def __init__(self, permits_per_window: int, window: float) -> None:
        self._permits_per_window = permits_per_window
        self._window = window
        self._available = permits_per_window
        self._last_reset = time.monotonic()

    async def acquire(self) -> None:
        """Take a permit, waiting for the next window if none is left."""
        while not self.try_acquire():
            await asyncio.sleep(self._time_until_reset())
        logger.debug("Rate limiter permit acquired")

    def try_acquire(self) -> bool:
        """Take a permit if one is available right now."""
        self._maybe_reset_window()
        if self._available > 0:
            self._available -= 1
            logger.debug("Rate limiter permit acquired (non-blocking)")
            return True
        logger.debug("Rate limiter permit unavailable")
        return False

    def available_permits(self) -> int:
        return self._available

    def _time_until_reset(self) -> float:
        return max(0.0, self._last_reset + self._window - time.monotonic())

    def _maybe_reset_window(self) -> None:
        now = time.monotonic()
        if now - self._last_reset >= self._window:
            restored = self._permits_per_window - self._available
            self._available = self._permits_per_window
            self._last_reset = now
            logger.debug("Rate limiter window reset, %d permits restored", restored)


class TokenBucket:
    """A bucket of fractional tokens refilled continuously at ``refill_rate`` per second."""

    def __init__(self, capacity: float, refill_rate: float) -> None:
        self._capacity = capacity
        self._refill_rate = refill_rate
        self._tokens = capacity
        self._last_refill = time.monotonic()

    def acquire(self, tokens_needed: float) -> bool:
        """Consume tokens if enough are present; never waits."""
        self._refill()
        if self._tokens >= tokens_needed:
            self._tokens -= tokens_needed
            logger.debug(
                "Token bucket: %s tokens consumed, %s remaining", tokens_needed, self._tokens
            )
            return True
        logger.debug(
            "Token bucket: insufficient tokens (%s needed, %s available)",
            tokens_needed,
            self._tokens,
        )
        return False

    async def acquire_blocking(self, tokens_needed: float) -> None:
        """Consume tokens, sleeping until enough have been refilled."""
        while not self.acquire(tokens_needed):
            wait = tokens_needed / self._refill_rate
            logger.debug("Token bucket: waiting %.3fs for tokens", wait)
            await asyncio.sleep(wait)

    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        if elapsed > 0.0:
            new_tokens = elapsed * self._refill_rate
            self._tokens = min(self._tokens + new_tokens, self._capacity)
            self._last_refill = now
            if new_tokens > 0.0:
                logger.debug(
                    "Token bucket: refilled %s tokens, %s total", new_tokens, self._tokens
                )


class AdaptiveRateLimiter:
    """A windowed limiter whose permit count follows the observed error rate.

    At each window boundary the permit count drops by 10% when more than 10%
    of the recorded requests failed, and grows by 10% (up to twice the base)
    when fewer than 5% failed and more than half the permits were used.
    """

    _ADJUSTMENT_FACTOR = 0.1

    def __init__(self, base_permits: int, window: float) -> None:
        self._base_permits = base_permits
        self._current_permits = base_permits
        self._window = window
        self._available = base_permits
        self._success_count = 0
        self._error_count = 0
        self._last_reset = time.monotonic()

    async def acquire(self) -> None:
        """Take a permit, waiting for the next window if none is left."""
        while True:
            self._maybe_adjust_rate()
            if self._available > 0:
                self._available -= 1
                logger.debug("Adaptive rate limiter permit acquired")
                return
            await asyncio.sleep(max(0.0, self._last_reset + self._window - time.monotonic()))

    def record_success(self) -> None:
        self._success_count += 1

    def record_error(self) -> None:
        self._error_count += 1

    def current_rate(self) -> int:
        return self._current_permits

    def _maybe_adjust_rate(self) -> None:
        now = time.monotonic()
        if now - self._last_reset < self._window:
            return

        successes, errors = self._success_count, self._error_count
        self._success_count = self._error_count = 0
        total = successes + errors
        if total > 0:
            error_rate = errors / total
            current = self._current_permits
            if error_rate > 0.1:
                new_permits = int(max(current * (1.0 - self._ADJUSTMENT_FACTOR), 1.0))
            elif error_rate < 0.05 and successes > current // 2:
                new_permits = int(
                    min(current * (1.0 + self._ADJUSTMENT_FACTOR), self._base_permits * 2.0)
                )
            else:
                new_permits = current
            if new_permits != current:
                self._current_permits = new_permits
                logger.debug("Adaptive rate limiter adjusted to %d permits/window", new_permits)

        self._available = self._current_permits
        self._last_reset = now