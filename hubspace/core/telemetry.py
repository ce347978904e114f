"""Counter sinks for membership components.

Emission is fire-and-forget: a broken sink must never fail the component that
reports to it, so callers go through :func:`emit_safely`.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class MetricsSink(Protocol):
    def emit(self, name: str, value: float, dimensions: Mapping[str, str]) -> None:
        ...


@dataclass
class MetricsSnapshot:
    counters: Dict[str, float]
    recent: List[Dict[str, object]]


class InMemoryMetricsSink:
    """In-memory counter recorder keyed by metric name."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self.counters: Counter[str] = Counter()
        self.recent = deque(maxlen=100)

    def reset(self) -> None:
        """Clear all counters (useful in tests)."""
        with self._lock:
            self._reset_state()

    def emit(self, name: str, value: float, dimensions: Mapping[str, str]) -> None:
        with self._lock:
            self.counters[name] += value
            self.recent.append(
                {
                    "name": name,
                    "value": value,
                    "dimensions": dict(dimensions),
                    "at": datetime.now(timezone.utc).isoformat(),
                }
            )

    def value(self, name: str) -> float:
        with self._lock:
            return self.counters.get(name, 0)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(counters=dict(self.counters), recent=list(self.recent))


class LoggingMetricsSink:
    """Writes each counter as a structured log line for log-based metric filters."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logging.getLogger("hubspace.metrics")

    def emit(self, name: str, value: float, dimensions: Mapping[str, str]) -> None:
        self._log.info("metric name=%s value=%s dimensions=%s", name, value, dict(dimensions))


def emit_safely(
    sink: Optional[MetricsSink],
    name: str,
    value: float,
    dimensions: Mapping[str, str],
) -> None:
    if sink is None:
        return
    try:
        sink.emit(name, value, dimensions)
    except Exception:
        logger.exception("Failed to emit metric %s", name)


# Global default sink; components accept an injected sink and fall back to this.
metrics_sink = InMemoryMetricsSink()


__all__ = [
    "InMemoryMetricsSink",
    "LoggingMetricsSink",
    "MetricsSink",
    "MetricsSnapshot",
    "emit_safely",
    "metrics_sink",
]
