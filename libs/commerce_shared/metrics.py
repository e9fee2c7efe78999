# libs/commerce_shared/metrics.py
"""
In-process metrics registry.

Counters, gauges and histogram summaries are kept in memory (one process,
no exporter) and every observation is also emitted as a debug log line.
``Metrics.snapshot()`` feeds the ``/health`` details.
"""

import threading
from typing import Any, Dict, Optional, Tuple

from .logging import get_logger

logger = get_logger(__name__)

_SeriesKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _series(name: str, labels: Optional[Dict[str, str]]) -> _SeriesKey:
    return name, tuple(sorted((labels or {}).items()))


def _series_name(key: _SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in labels)
    return f"{name}{{{rendered}}}"


class Metrics:
    _lock = threading.Lock()
    _counters: Dict[_SeriesKey, int] = {}
    _gauges: Dict[_SeriesKey, float] = {}
    _histograms: Dict[_SeriesKey, Dict[str, float]] = {}

    @classmethod
    def counter(cls, name: str, labels: Optional[Dict[str, str]] = None, value: int = 1):
        """
        Increment a counter.

        Args:
            name: Metric name
            labels: Optional labels dictionary
            value: Amount to add
        """
        key = _series(name, labels)
        with cls._lock:
            cls._counters[key] = cls._counters.get(key, 0) + value
        logger.debug(f"METRIC: counter {name}", extra={"labels": labels or {}})

    @classmethod
    def histogram(cls, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Observe one sample; only count, sum and max are retained."""
        key = _series(name, labels)
        with cls._lock:
            summary = cls._histograms.setdefault(key, {"count": 0, "sum": 0.0, "max": 0.0})
            summary["count"] += 1
            summary["sum"] += value
            summary["max"] = max(summary["max"], value)
        logger.debug(f"METRIC: histogram {name}={value}", extra={"labels": labels or {}})

    @classmethod
    def gauge(cls, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        key = _series(name, labels)
        with cls._lock:
            cls._gauges[key] = value
        logger.debug(f"METRIC: gauge {name}={value}", extra={"labels": labels or {}})

    @classmethod
    def snapshot(cls, prefix: str = "") -> Dict[str, Any]:
        """
        Current values of every series whose name starts with ``prefix``.

        Returns:
            ``{"counters": {...}, "gauges": {...}, "histograms": {...}}`` keyed
            by ``name{label=value,...}``
        """
        with cls._lock:
            return {
                "counters": {
                    _series_name(k): v for k, v in cls._counters.items() if k[0].startswith(prefix)
                },
                "gauges": {
                    _series_name(k): v for k, v in cls._gauges.items() if k[0].startswith(prefix)
                },
                "histograms": {
                    _series_name(k): dict(v)
                    for k, v in cls._histograms.items()
                    if k[0].startswith(prefix)
                },
            }

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._counters.clear()
            cls._gauges.clear()
            cls._histograms.clear()
