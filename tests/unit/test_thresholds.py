"""
Unit tests for threshold parsing and evaluation.
"""

import pytest

from loadgen_sdk.common.errors import ThresholdSyntaxError
from loadgen_sdk.metrics import MetricAggregator, MetricKind
from loadgen_sdk.thresholds import (
    ThresholdStatus,
    evaluate,
    evaluate_threshold,
    parse_metric_key,
    parse_threshold,
    thresholds_passed,
)


def _snapshot():
    aggregator = MetricAggregator()
    for _ in range(95):
        aggregator.record_sample("http_req_duration", 100.0, tags={"operation": "DEPOSIT"})
    for _ in range(5):
        aggregator.record_sample("http_req_duration", 900.0, tags={"operation": "WITHDRAW"})
    for i in range(100):
        aggregator.record_boolean("http_req_failed", i == 0)
    aggregator.record_count("http_reqs", 100)
    aggregator.declare("wallet_operations", MetricKind.COUNTER)
    return aggregator.snapshot()


def test_parse_percentile_expression():
    spec = parse_threshold("http_req_duration", "p(95)<500")
    assert spec.metric == "http_req_duration"
    assert spec.aggregation == "p"
    assert spec.percentile == 95
    assert spec.comparator == "<"
    assert spec.bound == 500
    assert spec.label == "http_req_duration: p(95)<500"


@pytest.mark.parametrize("expression,aggregation,comparator,bound", [
    ("rate<0.01", "rate", "<", 0.01),
    ("avg <= 200", "avg", "<=", 200),
    ("count>=10", "count", ">=", 10),
    ("med!=0", "med", "!=", 0),
    ("p(99.9) < 1500", "p", "<", 1500),
])
def test_parse_other_expressions(expression, aggregation, comparator, bound):
    spec = parse_threshold("m", expression)
    assert spec.aggregation == aggregation
    assert spec.comparator == comparator
    assert spec.bound == pytest.approx(bound)


@pytest.mark.parametrize("expression", ["p95<500", "rate", "avg<<1", "p(101)<5", "median<3", ""])
def test_invalid_expressions_raise(expression):
    with pytest.raises(ThresholdSyntaxError):
        parse_threshold("http_req_duration", expression)


def test_parse_metric_key_with_tag_selector():
    name, tags = parse_metric_key("http_req_duration{operation:DEPOSIT, status:200}")
    assert name == "http_req_duration"
    assert tags == {"operation": "DEPOSIT", "status": "200"}
    with pytest.raises(ThresholdSyntaxError):
        parse_metric_key("http_req_duration{operation}")
    with pytest.raises(ThresholdSyntaxError):
        parse_metric_key("bad name")


def test_percentile_threshold_against_snapshot():
    snapshot = _snapshot()
    passed = evaluate_threshold(snapshot, parse_threshold("http_req_duration", "p(95)<500"))
    failed = evaluate_threshold(snapshot, parse_threshold("http_req_duration", "p(99)<500"))
    assert passed.status is ThresholdStatus.PASSED
    assert passed.observed == pytest.approx(100.0, rel=0.01)
    assert failed.status is ThresholdStatus.FAILED
    assert failed.observed == pytest.approx(900.0, rel=0.01)
    assert "not satisfied" in failed.message


def test_tagged_threshold_uses_selected_series():
    snapshot = _snapshot()
    verdict = evaluate_threshold(snapshot, parse_threshold("http_req_duration{operation:WITHDRAW}", "min>800"))
    assert verdict.passed


def test_rate_threshold():
    snapshot = _snapshot()
    assert evaluate_threshold(snapshot, parse_threshold("http_req_failed", "rate<0.02")).passed
    assert not evaluate_threshold(snapshot, parse_threshold("http_req_failed", "rate<0.01")).passed


def test_counter_rate_uses_elapsed_time():
    snapshot = _snapshot()
    spec = parse_threshold("http_reqs", "rate>5")
    assert evaluate_threshold(snapshot, spec, elapsed=10.0).passed
    assert evaluate_threshold(snapshot, spec).status is ThresholdStatus.NO_DATA


def test_unsampled_metric_is_no_data_and_not_a_pass():
    snapshot = _snapshot()
    verdicts = evaluate(snapshot, [
        parse_threshold("wallet_operations", "count>0"),
        parse_threshold("never_declared", "rate<1"),
    ])
    assert [v.status for v in verdicts] == [ThresholdStatus.NO_DATA, ThresholdStatus.NO_DATA]
    assert not thresholds_passed(verdicts)


def test_aggregation_of_wrong_kind_fails_with_message():
    verdict = evaluate_threshold(_snapshot(), parse_threshold("http_req_failed", "p(95)<1"))
    assert verdict.status is ThresholdStatus.FAILED
    assert "does not apply" in verdict.message


def test_evaluation_is_deterministic():
    snapshot = _snapshot()
    specs = [
        parse_threshold("http_req_duration", "p(95)<500"),
        parse_threshold("http_req_failed", "rate<0.01"),
    ]
    first = evaluate(snapshot, specs)
    second = evaluate(snapshot, specs)
    assert first == second
    assert [v.to_dict() for v in first] == [v.to_dict() for v in second]


def test_no_thresholds_pass_vacuously():
    assert thresholds_passed([])
