"""Ping/pong heartbeats, latency statistics and connection health monitoring."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import statistics
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PingSender = Callable[[], Awaitable[None]]
ReconnectHandler = Callable[[], Awaitable[None]]

_MAX_LATENCY_SAMPLES = 100


@dataclass
class HeartbeatStatus:
    """Snapshot of the heartbeat state. Times are ``time.monotonic()`` values."""

    last_ping: float | None = None
    last_pong: float | None = None
    ping_count: int = 0
    pong_count: int = 0
    missed_pongs: int = 0
    average_latency: float | None = None
    is_healthy: bool = True


@dataclass(frozen=True)
class LatencyStats:
    """Round-trip latency distribution, in seconds."""

    min: float
    max: float
    p50: float
    p95: float
    p99: float
    avg: float
    count: int


class HeartbeatManager:
    """Sends pings periodically and judges health from the pongs that follow.

    After each ping it waits ``timeout`` seconds; a pong recorded in that time
    counts as an answer, otherwise the ping counts as missed. Once
    ``max_missed_pongs`` consecutive pings go unanswered the connection is
    reported unhealthy. Intervals are given in seconds.
    """

    def __init__(self, ping_interval: float, max_missed_pongs: int, timeout: float) -> None:
        self.ping_interval = ping_interval
        self.max_missed_pongs = max_missed_pongs
        self.timeout = timeout
        self._status = HeartbeatStatus()
        self._samples: deque[float] = deque(maxlen=_MAX_LATENCY_SAMPLES)
        self._task: asyncio.Task | None = None

    async def start(self, ping_sender: PingSender) -> None:
        """Start the ping loop in the background."""
        await self.stop()
        self._task = asyncio.create_task(self._run(ping_sender))

    async def stop(self) -> None:
        """Stop the ping loop if it is running."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def record_ping(self) -> None:
        """Note that a ping was sent just now."""
        self._mark_ping(time.monotonic())

    def record_pong(self) -> None:
        """Note that a pong arrived just now."""
        self._status.last_pong = time.monotonic()
        self._status.pong_count += 1
        logger.debug("Heartbeat pong recorded, count: %d", self._status.pong_count)

    def status(self) -> HeartbeatStatus:
        return dataclasses.replace(self._status)

    def is_healthy(self) -> bool:
        return self._status.is_healthy

    def latency(self) -> float | None:
        """Average round-trip latency in seconds, if any pong was matched."""
        return self._status.average_latency

    def reset(self) -> None:
        self._status = HeartbeatStatus()
        self._samples.clear()
        logger.info("Heartbeat status reset")

    def latency_percentiles(self) -> LatencyStats | None:
        if not self._samples:
            return None
        ordered = sorted(self._samples)
        count = len(ordered)
        return LatencyStats(
            min=ordered[0],
            max=ordered[-1],
            p50=ordered[count // 2],
            p95=ordered[count * 95 // 100],
            p99=ordered[count * 99 // 100],
            avg=statistics.fmean(ordered),
            count=count,
        )

    def _mark_ping(self, at: float) -> None:
        self._status.last_ping = at
        self._status.ping_count += 1
        logger.debug("Heartbeat ping sent, count: %d", self._status.ping_count)

    async def _run(self, ping_sender: PingSender) -> None:
        next_tick = time.monotonic()
        while True:
            delay = next_tick - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            now = time.monotonic()
            next_tick += self.ping_interval
            while next_tick <= now:
                next_tick += self.ping_interval

            logger.debug("Sending heartbeat ping")
            ping_time = time.monotonic()
            try:
                await ping_sender()
            except Exception as exc:
                logger.error("Failed to send heartbeat ping: %s", exc)
                continue
            self._mark_ping(ping_time)

            await asyncio.sleep(self.timeout)
            self._evaluate()

    def _evaluate(self) -> None:
        status = self._status
        if status.last_ping is not None and status.last_pong is not None:
            if status.last_pong >= status.last_ping:
                latency = status.last_pong - status.last_ping
                status.missed_pongs = 0
                status.is_healthy = True
                self._samples.append(latency)
                status.average_latency = statistics.fmean(self._samples)
                logger.debug(
                    "Heartbeat pong received, latency: %.6fs, avg: %.6fs",
                    latency,
                    status.average_latency,
                )
                return
            status.missed_pongs += 1
            logger.warning("Missed heartbeat pong, count: %d", status.missed_pongs)
            if status.missed_pongs >= self.max_missed_pongs:
                status.is_healthy = False
                logger.error(
                    "Connection unhealthy: too many missed pongs (%d)", status.missed_pongs
                )
        else:
            status.missed_pongs += 1
            if status.missed_pongs >= self.max_missed_pongs:
                status.is_healthy = False


class ConnectionHealthMonitor:
    """Runs a heartbeat and calls a reconnect handler when the link goes bad.

    Health is checked every ``health_check_interval`` seconds; a reconnect is
    attempted when the heartbeat is unhealthy and at least
    ``reconnect_threshold`` pongs in a row were missed.
    """

    HEALTH_CHECK_INTERVAL = 30.0

    def __init__(
        self,
        ping_interval: float,
        max_missed_pongs: int,
        timeout: float,
        reconnect_threshold: int,
    ) -> None:
        self._heartbeat = HeartbeatManager(ping_interval, max_missed_pongs, timeout)
        self.reconnect_threshold = reconnect_threshold
        self.health_check_interval = self.HEALTH_CHECK_INTERVAL
        self._monitoring = False
        self._task: asyncio.Task | None = None

    async def start_monitoring(
        self, ping_sender: PingSender, reconnect_handler: ReconnectHandler
    ) -> None:
        self._monitoring = True
        await self._heartbeat.start(ping_sender)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._watch(reconnect_handler))

    async def stop_monitoring(self) -> None:
        self._monitoring = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._heartbeat.stop()
        logger.info("Health monitoring stopped")

    def record_pong(self) -> None:
        self._heartbeat.record_pong()

    def status(self) -> HeartbeatStatus:
        return self._heartbeat.status()

    def is_healthy(self) -> bool:
        return self._heartbeat.is_healthy()

    def latency_stats(self) -> LatencyStats | None:
        return self._heartbeat.latency_percentiles()

    async def _watch(self, reconnect_handler: ReconnectHandler) -> None:
        while self._monitoring:
            status = self._heartbeat.status()
            if not status.is_healthy and status.missed_pongs >= self.reconnect_threshold:
                logger.warning("Connection requires reconnection due to health issues")
                try:
                    await reconnect_handler()
                except Exception as exc:
                    logger.error("Reconnection failed: %s", exc)
                else:
                    logger.info("Reconnection successful, resetting heartbeat status")
                    self._heartbeat.reset()

            stats = self._heartbeat.latency_percentiles()
            if stats is not None:
                logger.debug(
                    "Connection health - Latency: avg=%.6fs, p95=%.6fs, p99=%.6fs, missed_pongs=%d",
                    stats.avg,
                    stats.p95,
                    stats.p99,
                    status.missed_pongs,
                )
            await asyncio.sleep(self.health_check_interval)