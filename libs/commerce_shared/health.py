# libs/commerce_shared/health.py
"""
Health monitoring and health check helpers.

The HealthMonitor aggregates request latency, error counts and cache hit/miss
counts between evaluations. Each evaluation classifies the window, publishes
a snapshot and resets the counters, so a snapshot only ever describes the
most recent window.
"""

import asyncio
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from .logging import get_logger
from .metrics import Metrics
from .models import HealthResponse, HealthStatus

logger = get_logger(__name__)

UNHEALTHY_ERROR_RATE = 0.10
DEGRADED_ERROR_RATE = 0.05
UNHEALTHY_CACHE_HIT_RATE = 0.30
DEGRADED_CACHE_HIT_RATE = 0.50


class HealthSnapshot(BaseModel):
    """Result of one health evaluation."""

    status: HealthStatus = HealthStatus.HEALTHY
    last_check: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    api_latency_ms: Optional[float] = None
    error_rate: float = 0.0
    cache_hit_rate: float = 1.0


def classify_health(error_rate: float, cache_hit_rate: float) -> HealthStatus:
    """
    Map a window's error rate and cache hit rate to a health status.

    The error-rate thresholds dominate: a window at or above 10% errors is
    unhealthy whatever the cache is doing.
    """
    if error_rate >= UNHEALTHY_ERROR_RATE or cache_hit_rate < UNHEALTHY_CACHE_HIT_RATE:
        return HealthStatus.UNHEALTHY
    if error_rate >= DEGRADED_ERROR_RATE or cache_hit_rate < DEGRADED_CACHE_HIT_RATE:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthMonitor:
    """
    Rolling-window health aggregator.

    Counters are shared by every concurrently running turn, so all access goes
    through a lock. ``start()`` schedules ``evaluate()`` every
    ``check_interval`` seconds on the running event loop.
    """

    def __init__(
        self,
        check_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.check_interval = check_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._request_count = 0
        self._error_count = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._snapshot = HealthSnapshot(last_check=self._now())
        self._task: Optional[asyncio.Task] = None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def record_request(self, latency_ms: float, error: bool = False) -> None:
        """Record one completed backend call."""
        with self._lock:
            self._request_count += 1
            if error:
                self._error_count += 1
            current_error_rate = self._error_count / self._request_count
            self._snapshot = self._snapshot.model_copy(
                update={"api_latency_ms": latency_ms}
            )

        logger.debug(
            "Request completed",
            extra={
                "latency_ms": latency_ms,
                "has_error": error,
                "current_error_rate": current_error_rate,
            },
        )

    def record_cache_access(self, hit: bool) -> None:
        """Record one cache lookup outcome."""
        with self._lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1
            hit_rate = self._cache_hits / (self._cache_hits + self._cache_misses)

        logger.debug("Cache access recorded", extra={"hit": hit, "hit_rate": hit_rate})

    def evaluate(self) -> HealthSnapshot:
        """Classify the current window, publish the snapshot and reset counters."""
        with self._lock:
            error_rate = (
                self._error_count / self._request_count if self._request_count else 0.0
            )
            cache_total = self._cache_hits + self._cache_misses
            cache_hit_rate = self._cache_hits / cache_total if cache_total else 1.0

            self._snapshot = HealthSnapshot(
                status=classify_health(error_rate, cache_hit_rate),
                last_check=self._now(),
                api_latency_ms=self._snapshot.api_latency_ms,
                error_rate=error_rate,
                cache_hit_rate=cache_hit_rate,
            )
            snapshot = self._snapshot

            self._request_count = 0
            self._error_count = 0
            self._cache_hits = 0
            self._cache_misses = 0

        logger.info(
            "Health check completed",
            extra={
                "status": snapshot.status.value,
                "api_latency_ms": snapshot.api_latency_ms,
                "error_rate": snapshot.error_rate,
                "cache_hit_rate": snapshot.cache_hit_rate,
            },
        )
        Metrics.gauge("bridge_error_rate", snapshot.error_rate)
        Metrics.gauge("bridge_cache_hit_rate", snapshot.cache_hit_rate)
        return snapshot

    def snapshot(self) -> HealthSnapshot:
        """Return the latest published snapshot."""
        with self._lock:
            return self._snapshot.model_copy()

    def start(self) -> None:
        """Start periodic evaluation on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.info(
                "Health monitor started", extra={"check_interval": self.check_interval}
            )

    async def stop(self) -> None:
        """Cancel periodic evaluation."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            self.evaluate()


def format_health_response(
    snapshot: HealthSnapshot, details: Dict[str, Any], version: str
) -> HealthResponse:
    """
    Create a standardized health response.

    Args:
        snapshot: Latest health snapshot
        details: Service-specific health details
        version: Service version

    Returns:
        Formatted health response
    """
    merged = {
        "last_check": snapshot.last_check.isoformat(),
        "api_latency_ms": snapshot.api_latency_ms,
        "error_rate": snapshot.error_rate,
        "cache_hit_rate": snapshot.cache_hit_rate,
        **details,
    }
    return HealthResponse(status=snapshot.status, details=merged, version=version)
