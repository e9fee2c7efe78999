# libs/commerce_shared/tests/test_health.py

import asyncio

import pytest
from libs.commerce_shared.health import (
    HealthMonitor,
    classify_health,
    format_health_response,
)
from libs.commerce_shared.models import HealthStatus


@pytest.mark.unit
class TestClassifyHealth:
    @pytest.mark.parametrize(
        "error_rate,hit_rate,expected",
        [
            (0.0, 1.0, HealthStatus.HEALTHY),
            (0.049, 0.5, HealthStatus.HEALTHY),
            (0.05, 1.0, HealthStatus.DEGRADED),
            (0.0, 0.49, HealthStatus.DEGRADED),
            (0.10, 1.0, HealthStatus.UNHEALTHY),
            (0.0, 0.29, HealthStatus.UNHEALTHY),
            (0.12, 0.9, HealthStatus.UNHEALTHY),
        ],
    )
    def test_thresholds(self, error_rate, hit_rate, expected):
        assert classify_health(error_rate, hit_rate) == expected


@pytest.mark.unit
class TestHealthMonitor:
    def test_empty_window_is_healthy(self, clock):
        monitor = HealthMonitor(clock=clock)

        snapshot = monitor.evaluate()

        assert snapshot.status == HealthStatus.HEALTHY
        assert snapshot.error_rate == 0.0
        assert snapshot.cache_hit_rate == 1.0

    def test_error_rate_drives_status(self, clock):
        monitor = HealthMonitor(clock=clock)
        for _ in range(9):
            monitor.record_request(100.0)
        monitor.record_request(250.0, error=True)

        snapshot = monitor.evaluate()

        assert snapshot.error_rate == pytest.approx(0.1)
        assert snapshot.status == HealthStatus.UNHEALTHY
        assert snapshot.api_latency_ms == 250.0

    def test_cache_hit_rate_drives_status(self, clock):
        monitor = HealthMonitor(clock=clock)
        monitor.record_cache_access(hit=True)
        monitor.record_cache_access(hit=False)
        monitor.record_cache_access(hit=False)

        snapshot = monitor.evaluate()

        assert snapshot.cache_hit_rate == pytest.approx(1 / 3)
        assert snapshot.status == HealthStatus.DEGRADED

    def test_counters_reset_after_evaluation(self, clock):
        monitor = HealthMonitor(clock=clock)
        monitor.record_request(10.0, error=True)
        assert monitor.evaluate().status == HealthStatus.UNHEALTHY

        clock.advance(60)
        snapshot = monitor.evaluate()

        assert snapshot.status == HealthStatus.HEALTHY
        assert snapshot.error_rate == 0.0
        assert snapshot.last_check.timestamp() == pytest.approx(clock.now)

    def test_latency_is_last_sample(self, clock):
        monitor = HealthMonitor(clock=clock)
        monitor.record_request(500.0)
        monitor.record_request(20.0)

        assert monitor.snapshot().api_latency_ms == 20.0

    @pytest.mark.asyncio
    async def test_start_and_stop_background_task(self):
        monitor = HealthMonitor(check_interval=0.01)
        monitor.record_request(10.0, error=True)

        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert monitor.snapshot().error_rate in (0.0, 1.0)
        assert monitor._task is None


@pytest.mark.unit
def test_format_health_response_merges_details(clock):
    monitor = HealthMonitor(clock=clock)
    monitor.record_request(42.0)
    snapshot = monitor.evaluate()

    response = format_health_response(snapshot, {"service": "bridge"}, "1.0.0")

    assert response.status == HealthStatus.HEALTHY
    assert response.version == "1.0.0"
    assert response.details["service"] == "bridge"
    assert response.details["api_latency_ms"] == 42.0
    assert "last_check" in response.details
