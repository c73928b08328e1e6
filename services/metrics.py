"""In-memory metrics for the turn engine.

Counts turn outcomes and envelope outcomes so degraded paths stay visible:
a reply whose data block failed to decode and a reply that simply carried
no translation both show nothing to the learner, but land in different
counters here.
"""

from __future__ import annotations

import math
import threading
from collections import defaultdict, deque

from models.chat import Envelope, EnvelopeStatus, TurnState


# Percentiles cover the most recent turns only.
LATENCY_WINDOW = 1000


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    if len(values) == 1:
        return values[0]
    ordered = sorted(values)
    pos = (len(ordered) - 1) * p
    lo = math.floor(pos)
    hi = math.ceil(pos)
    if lo == hi:
        return ordered[lo]
    frac = pos - lo
    return ordered[lo] * (1 - frac) + ordered[hi] * frac


class MetricsCollector:
    """Thread-safe in-memory metrics collector."""

    def __init__(self, window: int = LATENCY_WINDOW) -> None:
        self._lock = threading.RLock()
        self._counters: dict[str, int] = defaultdict(int)
        self._turn_latencies: deque[float] = deque(maxlen=window)
        self._turn_count = 0
        self._xp_total = 0

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def record_envelope(self, envelope: Envelope) -> None:
        """Count the envelope outcome and whether a translation came with it."""
        with self._lock:
            self._counters[f"envelope.{envelope.status.value}"] += 1
            if envelope.status is EnvelopeStatus.PARSED and envelope.translation is None:
                self._counters["translation.missing"] += 1

    def record_turn(self, *, state: TurnState, latency_ms: float, xp: int = 0) -> None:
        with self._lock:
            self._counters[f"turn.{state.value}"] += 1
            self._turn_latencies.append(float(latency_ms))
            self._turn_count += 1
            self._xp_total += xp

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> dict:
        with self._lock:
            latencies = list(self._turn_latencies)
            return {
                "counters": dict(self._counters),
                "turns": {
                    "count": self._turn_count,
                    "latency_p50_ms": _percentile(latencies, 0.5),
                    "latency_p95_ms": _percentile(latencies, 0.95),
                },
                "xp_awarded": self._xp_total,
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._turn_latencies.clear()
            self._turn_count = 0
            self._xp_total = 0


_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector shared by every orchestrator."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
