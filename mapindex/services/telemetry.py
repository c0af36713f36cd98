from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class EventSample:
    ts: float
    kind: str
    latency_ms: float
    success: bool


_event_samples: Deque[EventSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)
_gauges: dict[str, float] = {}


def record_event(*, kind: str, latency_ms: float, success: bool) -> None:
    # Track per-kind processing latency and outcome for indexer health.
    _event_samples.append(EventSample(ts=time.time(), kind=kind, latency_ms=latency_ms, success=success))
    increment_counter(f"events_{'processed' if success else 'failed'}_total.{kind}")


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def set_gauge(name: str, value: float) -> None:
    _gauges[name] = float(value)


def counter(name: str) -> int:
    return int(_counters.get(name, 0))


def p95_latency_ms(kind: str | None = None) -> float | None:
    samples = sorted(
        sample.latency_ms for sample in _event_samples if kind is None or sample.kind == kind
    )
    if not samples:
        return None
    index = max(0, int(round(0.95 * len(samples))) - 1)
    return samples[index]


def snapshot() -> dict[str, dict[str, float]]:
    kinds = sorted({sample.kind for sample in _event_samples})
    return {
        "counters": dict(_counters),
        "gauges": dict(_gauges),
        "latency_p95_ms": {kind: p95_latency_ms(kind) for kind in kinds},
    }


def reset() -> None:
    # Tests reset process-wide telemetry between cases.
    _event_samples.clear()
    _counters.clear()
    _gauges.clear()
