import asyncio

import pytest

from arbfinder.exchange.heartbeat import (
    ConnectionHealthMonitor,
    HeartbeatManager,
    HeartbeatStatus,
)


@pytest.mark.asyncio
async def test_heartbeat_manager_counts_pings():
    manager = HeartbeatManager(0.1, 3, 0.05)
    sent = 0

    async def ping_sender():
        nonlocal sent
        sent += 1

    await manager.start(ping_sender)
    try:
        await asyncio.sleep(0.25)
        status = manager.status()
    finally:
        await manager.stop()
    assert status.ping_count > 0
    assert sent == status.ping_count


@pytest.mark.asyncio
async def test_pong_recording():
    manager = HeartbeatManager(1.0, 3, 0.1)
    manager.record_pong()
    status = manager.status()
    assert status.pong_count == 1
    assert status.last_pong is not None


@pytest.mark.asyncio
async def test_latency_calculation():
    manager = HeartbeatManager(0.05, 3, 0.03)
    loop = asyncio.get_running_loop()

    async def ping_sender():
        loop.call_later(0.01, manager.record_pong)

    await manager.start(ping_sender)
    try:
        await asyncio.sleep(0.2)
        latency = manager.latency()
        stats = manager.latency_percentiles()
    finally:
        await manager.stop()
    assert latency is not None
    assert latency >= 0.009
    assert stats is not None
    assert stats.count >= 1
    assert stats.min <= stats.p50 <= stats.p95 <= stats.p99 <= stats.max
    assert stats.min <= stats.avg <= stats.max
    assert manager.is_healthy()


@pytest.mark.asyncio
async def test_missed_pongs_make_connection_unhealthy():
    manager = HeartbeatManager(0.02, 2, 0.01)

    async def ping_sender():
        return None

    await manager.start(ping_sender)
    try:
        await asyncio.sleep(0.2)
        status = manager.status()
    finally:
        await manager.stop()
    assert status.missed_pongs >= 2
    assert status.is_healthy is False
    assert manager.is_healthy() is False
    assert manager.latency() is None


@pytest.mark.asyncio
async def test_failed_ping_is_not_counted():
    manager = HeartbeatManager(0.02, 2, 0.01)
    attempts = 0

    async def ping_sender():
        nonlocal attempts
        attempts += 1
        raise RuntimeError("send failed")

    await manager.start(ping_sender)
    try:
        await asyncio.sleep(0.1)
        status = manager.status()
    finally:
        await manager.stop()
    assert attempts > 0
    assert status.ping_count == 0
    assert status.missed_pongs == 0


def test_latency_percentiles_empty():
    manager = HeartbeatManager(1.0, 3, 0.1)
    assert manager.latency_percentiles() is None


def test_reset_restores_defaults():
    manager = HeartbeatManager(1.0, 3, 0.1)
    manager.record_ping()
    manager.record_pong()
    manager.reset()
    assert manager.status() == HeartbeatStatus()


def test_record_ping_updates_status():
    manager = HeartbeatManager(1.0, 3, 0.1)
    manager.record_ping()
    manager.record_ping()
    status = manager.status()
    assert status.ping_count == 2
    assert status.last_ping is not None


def test_status_is_a_copy():
    manager = HeartbeatManager(1.0, 3, 0.1)
    snapshot = manager.status()
    snapshot.ping_count = 42
    assert manager.status().ping_count == 0


@pytest.mark.asyncio
async def test_health_monitoring_sends_pings():
    monitor = ConnectionHealthMonitor(0.05, 2, 0.025, 2)
    pings = 0

    async def ping_sender():
        nonlocal pings
        pings += 1

    async def reconnect_handler():
        return None

    await monitor.start_monitoring(ping_sender, reconnect_handler)
    try:
        await asyncio.sleep(0.2)
    finally:
        await monitor.stop_monitoring()
    assert pings > 0
    assert monitor.status().ping_count == pings


@pytest.mark.asyncio
async def test_health_monitor_reconnects_when_unhealthy():
    monitor = ConnectionHealthMonitor(0.02, 1, 0.01, 1)
    monitor.health_check_interval = 0.02
    reconnects = 0

    async def ping_sender():
        return None

    async def reconnect_handler():
        nonlocal reconnects
        reconnects += 1

    await monitor.start_monitoring(ping_sender, reconnect_handler)
    try:
        await asyncio.sleep(0.3)
    finally:
        await monitor.stop_monitoring()
    assert reconnects > 0
    assert monitor.status().pong_count == 0
    assert monitor.latency_stats() is None


@pytest.mark.asyncio
async def test_health_monitor_record_pong_and_stats():
    monitor = ConnectionHealthMonitor(1.0, 3, 0.1, 3)
    monitor.record_pong()
    assert monitor.status().pong_count == 1
    assert monitor.is_healthy() is True
    assert monitor.latency_stats() is None