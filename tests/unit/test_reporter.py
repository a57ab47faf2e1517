"""
Unit tests for the end-of-test summary.
"""

import json
from datetime import datetime, timezone

from rich.console import Console

from loadgen_sdk.metrics import MetricAggregator
from loadgen_sdk.orchestrator import LifecycleState, RunReport
from loadgen_sdk.reporter import format_metric_values, render_summary, write_summary_json
from loadgen_sdk.thresholds import evaluate, parse_threshold


def make_report(failed_requests: int = 0) -> RunReport:
    aggregator = MetricAggregator()
    for i in range(100):
        aggregator.record_count("iterations")
        aggregator.record_sample("http_req_duration", 10.0 + i)
        aggregator.record_boolean("http_req_failed", i < failed_requests)
        aggregator.record_boolean("checks", i >= failed_requests, tags={"check": "status is 200"})
    snapshot = aggregator.snapshot()
    specs = [parse_threshold("http_req_failed", "rate<0.01")]
    now = datetime.now(timezone.utc)
    return RunReport(
        scenario="constant_load",
        states=[LifecycleState.IDLE, LifecycleState.DONE],
        started_at=now,
        finished_at=now,
        duration=10.0,
        snapshot=snapshot,
        verdicts=evaluate(snapshot, specs, 10.0),
        vus_max=10,
        vus_started=10,
    )


def test_format_metric_values():
    assert format_metric_values("counter", {"count": 100, "rate": 10.0}) == "100  10.00/s"
    assert format_metric_values("rate", {"rate": 0.5, "passes": 1, "fails": 1}) == "50.00%  ✓ 1  ✗ 1"
    assert format_metric_values("trend", {"count": 0}) == "no samples"
    trend = format_metric_values("trend", {"count": 2, "avg": 1.5, "min": 1.0, "max": 2.0})
    assert trend == "avg=1.50 min=1 max=2"


def test_render_summary_passing_run():
    console = Console(record=True, width=160)
    render_summary(make_report(), console)
    text = console.export_text()

    assert "constant_load" in text
    assert "status is 200" in text
    assert "http_req_duration" in text
    assert "rate<0.01" in text
    assert "All thresholds passed" in text


def test_render_summary_failing_run():
    console = Console(record=True, width=160)
    render_summary(make_report(failed_requests=5), console)
    text = console.export_text()

    assert "Run failed" in text
    assert "exit code 99" in text


def test_write_summary_json(tmp_path):
    path = write_summary_json(make_report(failed_requests=5), str(tmp_path / "out" / "summary.json"))

    data = json.loads(path.read_text())
    assert data["passed"] is False
    assert data["exit_code"] == 99
    assert data["thresholds"][0]["status"] == "failed"
    assert data["checks"] == [{"name": "status is 200", "passes": 95, "fails": 5, "rate": 0.95}]
    assert data["metrics"]["iterations"]["values"] == {"count": 100, "rate": 10.0}
