"""
Unit tests for the check evaluator.
"""

import pytest

from loadgen_sdk.checks import CHECKS_METRIC, Check, CheckSet
from loadgen_sdk.executor import IterationResult
from loadgen_sdk.metrics import MetricAggregator


def _checks():
    return CheckSet.from_mapping({
        "status is 200": lambda r: r.status_code == 200,
        "no 5xx errors": lambda r: r.status_code < 500,
        "response time < 500ms": lambda r: r.duration_ms < 500,
    })


def test_every_check_is_evaluated():
    outcomes = _checks().evaluate(IterationResult(status_code=409, duration_micros=600_000))
    assert outcomes == {
        "status is 200": False,
        "no 5xx errors": True,
        "response time < 500ms": False,
    }


def test_duplicate_check_names_rejected():
    with pytest.raises(ValueError, match="Duplicate"):
        CheckSet([Check("a", bool), Check("a", bool)])


def test_raising_predicate_fails_only_its_own_check():
    def broken(result):
        raise RuntimeError("predicate bug")

    checks = CheckSet([Check("broken", broken), Check("ok", lambda r: True)])
    outcomes = checks.evaluate(IterationResult(status_code=200))
    assert outcomes == {"broken": False, "ok": True}


def test_record_writes_one_sample_per_check():
    aggregator = MetricAggregator()
    checks = _checks()
    checks.record(IterationResult(status_code=200, duration_micros=1000), aggregator)
    checks.record(IterationResult(status_code=500, duration_micros=1000), aggregator)

    snapshot = aggregator.snapshot()
    assert snapshot.value(CHECKS_METRIC).total == 6
    assert snapshot.rate(CHECKS_METRIC, {"check": "status is 200"}) == pytest.approx(0.5)
    assert snapshot.rate(CHECKS_METRIC, {"check": "response time < 500ms"}) == pytest.approx(1.0)
    assert snapshot.tag_values(CHECKS_METRIC, "check") == sorted(checks.names)


def test_check_outcomes_are_independent_of_order():
    predicates = {
        "status is 200": lambda r: r.status_code == 200,
        "no 5xx errors": lambda r: r.status_code < 500,
        "response time < 500ms": lambda r: r.duration_ms < 500,
    }
    forward = CheckSet.from_mapping(predicates)
    backward = CheckSet(Check(name, fn) for name, fn in reversed(list(predicates.items())))
    result = IterationResult(status_code=409, duration_micros=100_000)
    assert forward.evaluate(result) == backward.evaluate(result)


def test_success_uses_all_checks_or_subset():
    checks = _checks()
    outcomes = checks.evaluate(IterationResult(status_code=409, duration_micros=1000))
    assert checks.succeeded(outcomes) is False
    assert checks.succeeded(outcomes, ["no 5xx errors", "response time < 500ms"]) is True
    with pytest.raises(KeyError):
        checks.succeeded(outcomes, ["missing"])


def test_empty_check_set_always_succeeds():
    checks = CheckSet()
    assert len(checks) == 0
    assert checks.succeeded(checks.evaluate(IterationResult(status_code=0))) is True
