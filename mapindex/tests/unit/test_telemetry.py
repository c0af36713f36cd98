from __future__ import annotations

from mapindex.services import telemetry


def test_snapshot_reports_outcomes_and_p95_per_kind() -> None:
    for latency in range(1, 21):
        telemetry.record_event(kind="map_revision", latency_ms=float(latency), success=latency != 20)
    telemetry.record_event(kind="map_discover", latency_ms=7.5, success=True)

    snap = telemetry.snapshot()

    assert snap["counters"]["events_processed_total.map_revision"] == 19
    assert snap["counters"]["events_failed_total.map_revision"] == 1
    assert snap["latency_p95_ms"] == {"map_discover": 7.5, "map_revision": 19.0}
