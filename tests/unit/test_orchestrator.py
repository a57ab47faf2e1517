"""
Unit tests for the lifecycle orchestrator, run end to end against the fake wallet service.
"""

import threading
from unittest.mock import Mock

import pytest

from loadgen_sdk.common.errors import ExitCode
from loadgen_sdk.executor import IterationResult
from loadgen_sdk.metrics import MetricAggregator
from loadgen_sdk.options import LoadOptions
from loadgen_sdk.orchestrator import LifecycleState, TestOrchestrator
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scenarios import get_scenario
from loadgen_sdk.thresholds import ThresholdStatus

FULL_LIFECYCLE = [
    LifecycleState.IDLE,
    LifecycleState.SETUP,
    LifecycleState.RUNNING,
    LifecycleState.DRAINING,
    LifecycleState.TEARDOWN,
    LifecycleState.REPORTED,
    LifecycleState.DONE,
]


def quick_options(**overrides):
    data = dict(vus=10, duration="0.5s", think_time=0.005, control_interval=0.05, graceful_stop=5)
    data.update(overrides)
    return LoadOptions(**data)


def test_fixed_run_all_success(wallet_client, fake_wallet):
    scenario = get_scenario("multi_wallet", wallet_client)
    scenario = scenario.with_options(quick_options(thresholds=scenario.options.thresholds))

    report = TestOrchestrator(scenario).run()

    assert report.states == FULL_LIFECYCLE
    assert report.state is LifecycleState.DONE
    assert report.passed
    assert report.exit_code is ExitCode.OK
    assert report.vus_max == 10
    assert report.vus_started == 10

    iterations = report.snapshot.counter("iterations")
    assert iterations > 0
    assert report.snapshot.counter("http_reqs") == iterations
    assert fake_wallet.operations == iterations
    assert report.snapshot.rate("http_req_failed") == 0.0
    assert report.snapshot.rate("checks") == 1.0
    assert {c["name"] for c in report.check_results()} == {"status is 200", "no 5xx errors"}
    assert all(v.status is ThresholdStatus.PASSED for v in report.verdicts)
    # Teardown read back every wallet's balance
    assert fake_wallet.balance_reads == 10


def test_staged_spike_tolerates_conflicts(make_wallet_service):
    service = make_wallet_service(conflict_ratio=0.3)
    with service.client() as client:
        spike = get_scenario("spike", client)
        options = LoadOptions(
            stages=[
                {"duration": "0.2s", "target": 5},
                {"duration": "0.3s", "target": 10},
                {"duration": "0.2s", "target": 0},
            ],
            thresholds=spike.options.thresholds,
            think_time=0.005,
            control_interval=0.05,
            graceful_stop=5,
        )
        report = TestOrchestrator(spike.with_options(options)).run()

    snapshot = report.snapshot
    total = snapshot.value("http_req_failed").total
    conflicts = snapshot.value("http_req_failed", {"status": "409"}).total
    assert total > 20
    assert conflicts / total == pytest.approx(0.3, abs=0.05)

    assert not report.aborted
    assert snapshot.rate("http_req_failed") == 0.0
    assert snapshot.rate("checks", {"check": "no 5xx errors"}) == 1.0
    assert snapshot.rate("checks", {"check": "status is 200 or 409"}) == 1.0
    assert report.passed
    assert report.vus_max == 10


def test_setup_failure_starts_no_vus(make_wallet_service):
    service = make_wallet_service(create_status=500)
    with service.client() as client:
        scenario = get_scenario("constant_load", client).with_options(quick_options())
        report = TestOrchestrator(scenario).run()

    assert report.states == [
        LifecycleState.IDLE,
        LifecycleState.SETUP,
        LifecycleState.REPORTED,
        LifecycleState.DONE,
    ]
    assert report.setup_failed
    assert report.vus_started == 0
    assert report.verdicts == []
    assert report.exit_code is ExitCode.SETUP_FAILED
    assert "setup failed" in report.abort_reason
    assert service.operations == 0


def test_stop_drains_and_tears_down_once(wallet_client):
    teardown = Mock()
    base = get_scenario("constant_load", wallet_client)
    scenario = Scenario(
        name="cancel",
        options=quick_options(vus=50, duration="30s"),
        setup=base.setup,
        iteration=base.iteration,
        teardown=teardown,
        checks=base.checks,
    )
    orchestrator = TestOrchestrator(scenario)
    timer = threading.Timer(0.3, orchestrator.stop)
    timer.start()
    try:
        report = orchestrator.run()
    finally:
        timer.cancel()

    assert report.interrupted
    assert report.abort_reason == "interrupted"
    assert report.duration < 10
    assert report.states == FULL_LIFECYCLE
    teardown.assert_called_once()
    assert orchestrator.scheduler.live_count == 0
    assert report.vus_max == 50


def test_abort_on_fail_threshold_ends_run(make_wallet_service):
    service = make_wallet_service(server_error_ratio=0.5)
    with service.client() as client:
        base = get_scenario("stress", client)
        options = quick_options(
            vus=5,
            duration="20s",
            thresholds={"http_req_failed": [{"threshold": "rate<0.01", "abortOnFail": True}]},
        )
        report = TestOrchestrator(base.with_options(options), threshold_check_interval=0.1).run()

    assert report.aborted_by_threshold
    assert "http_req_failed" in report.abort_reason
    assert report.duration < 10
    assert not report.passed
    assert report.exit_code is ExitCode.THRESHOLDS_FAILED
    assert report.states[-3:] == [LifecycleState.TEARDOWN, LifecycleState.REPORTED, LifecycleState.DONE]


def test_failed_threshold_exit_code(make_wallet_service):
    service = make_wallet_service(server_error_ratio=0.2)
    with service.client() as client:
        base = get_scenario("multi_wallet", client)
        report = TestOrchestrator(base.with_options(quick_options(thresholds=base.options.thresholds))).run()

    failed = [v for v in report.verdicts if v.status is ThresholdStatus.FAILED]
    assert [v.spec.label for v in failed] == ["http_req_failed: rate<0.01"]
    assert report.exit_code is ExitCode.THRESHOLDS_FAILED


def test_no_data_threshold_fails_run():
    scenario = Scenario(
        name="silent",
        options=quick_options(vus=1, duration="0.2s", thresholds={"wallet_operations": ["count>0"]}),
        iteration=lambda context, vu: IterationResult(status_code=200),
    )
    report = TestOrchestrator(scenario).run()

    assert report.verdicts[0].status is ThresholdStatus.NO_DATA
    assert report.exit_code is ExitCode.THRESHOLDS_FAILED


def test_teardown_error_is_reported_not_raised():
    def broken_teardown(context):
        raise RuntimeError("balance endpoint down")

    scenario = Scenario(
        name="teardown",
        options=quick_options(vus=2, duration="0.2s"),
        iteration=lambda context, vu: IterationResult(status_code=200),
        teardown=broken_teardown,
    )
    report = TestOrchestrator(scenario).run()

    assert report.state is LifecycleState.DONE
    assert "balance endpoint down" in report.teardown_error
    assert report.exit_code is ExitCode.OK


def test_orchestrator_runs_once():
    scenario = Scenario(
        name="once",
        options=quick_options(vus=1, duration="0.1s"),
        iteration=lambda context, vu: IterationResult(status_code=200),
    )
    orchestrator = TestOrchestrator(scenario)
    orchestrator.run()
    with pytest.raises(RuntimeError):
        orchestrator.run()


def test_report_to_dict(wallet_client):
    scenario = get_scenario("constant_load", wallet_client).with_options(
        quick_options(vus=2, duration="0.2s", thresholds={"checks": ["rate>0.99"]})
    )
    data = TestOrchestrator(scenario).run().to_dict()

    assert data["scenario"] == "constant_load"
    assert data["state"] == "done"
    assert data["exit_code"] == 0
    assert data["thresholds"][0]["status"] == "passed"
    assert data["metrics"]["wallet_operations"]["values"]["count"] > 0
    assert {c["name"] for c in data["checks"]} == {
        "status is 200",
        "no 5xx errors",
        "response time < 500ms",
    }


SETUP_FAILED_LIFECYCLE = [
    LifecycleState.IDLE,
    LifecycleState.SETUP,
    LifecycleState.REPORTED,
    LifecycleState.DONE,
]


def test_unknown_success_check_fails_before_setup():
    setup = Mock(return_value="ctx")
    teardown = Mock()
    scenario = Scenario(
        name="misconfigured",
        options=quick_options(vus=1, duration="0.1s"),
        iteration=lambda context, vu: IterationResult(status_code=200),
        setup=setup,
        teardown=teardown,
        success_checks=["missing"],
    )
    report = TestOrchestrator(scenario).run()

    assert report.states == SETUP_FAILED_LIFECYCLE
    assert report.setup_failed
    assert "missing" in report.abort_reason
    assert report.exit_code is ExitCode.SETUP_FAILED
    assert report.vus_started == 0
    setup.assert_not_called()
    teardown.assert_not_called()


def test_conflicting_aggregator_fails_before_setup():
    aggregator = MetricAggregator()
    aggregator.record_sample("iterations", 1.0)
    setup = Mock(return_value="ctx")
    teardown = Mock()
    scenario = Scenario(
        name="conflict",
        options=quick_options(vus=1, duration="0.1s"),
        iteration=lambda context, vu: IterationResult(status_code=200),
        setup=setup,
        teardown=teardown,
    )
    report = TestOrchestrator(scenario, aggregator=aggregator).run()

    assert report.states == SETUP_FAILED_LIFECYCLE
    assert report.exit_code is ExitCode.SETUP_FAILED
    assert "iterations" in report.abort_reason
    setup.assert_not_called()
    teardown.assert_not_called()


def test_vus_context_comes_from_setup():
    seen = []

    def iteration(context, vu):
        seen.append(context)
        return IterationResult(status_code=200)

    scenario = Scenario(
        name="context",
        options=quick_options(vus=2, duration="0.2s"),
        iteration=iteration,
        setup=lambda: "wallet-ctx",
    )
    TestOrchestrator(scenario).run()

    assert seen
    assert set(seen) == {"wallet-ctx"}
