"""
Threshold Evaluator - pass/fail bounds over final metric aggregates.

Threshold expressions use the k6 syntax:

    http_req_duration: ["p(95)<500", "p(99)<1000"]
    http_req_failed: ["rate<0.01"]
    http_req_duration{operation:DEPOSIT}: ["avg<200"]

Evaluation is a pure function of a MetricsSnapshot and the specs. A threshold
over a metric that has no samples is reported as NO_DATA and never counts as
passed.
"""

import operator
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from loadgen_sdk.common.errors import ThresholdSyntaxError
from loadgen_sdk.metrics import MetricKind, MetricsSnapshot

_EXPRESSION = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<bound>[-+]?\d+(?:\.\d+)?)\s*$"
)
_METRIC_KEY = re.compile(r"^\s*(?P<name>[A-Za-z_][A-Za-z0-9_.\-]*)\s*(?:\{(?P<tags>[^}]*)\})?\s*$")

COMPARATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

SUPPORTED_AGGREGATIONS = {
    MetricKind.TREND: {"avg", "min", "max", "med", "p", "count"},
    MetricKind.RATE: {"rate"},
    MetricKind.COUNTER: {"count", "rate"},
}


class ThresholdSpec(BaseModel):
    """
    One parsed threshold constraint.

    Attributes:
        metric: Metric name.
        tags: Tag selector; empty means the whole metric.
        aggregation: avg, min, max, med, count, rate or p.
        percentile: Percentile for the "p" aggregation.
        comparator: Comparison operator.
        bound: Right-hand side of the comparison.
        abort_on_fail: Stop the run as soon as this threshold fails.
        delay_abort_eval: Seconds into the run before abort evaluation starts.
        expression: Original expression text.
    """
    model_config = ConfigDict(frozen=True)

    metric: str
    tags: Dict[str, str] = Field(default_factory=dict)
    aggregation: str
    percentile: Optional[float] = None
    comparator: str
    bound: float
    abort_on_fail: bool = False
    delay_abort_eval: float = Field(default=0.0, ge=0.0)
    expression: str

    @property
    def metric_key(self) -> str:
        if not self.tags:
            return self.metric
        selector = ",".join(f"{k}:{v}" for k, v in sorted(self.tags.items()))
        return f"{self.metric}{{{selector}}}"

    @property
    def label(self) -> str:
        return f"{self.metric_key}: {self.expression}"


def parse_metric_key(key: str) -> Tuple[str, Dict[str, str]]:
    """
    Split "name{tag:value,...}" into the metric name and tag selector.

    Raises:
        ThresholdSyntaxError: If the key is malformed.
    """
    match = _METRIC_KEY.match(key)
    if not match:
        raise ThresholdSyntaxError(f"Invalid threshold metric '{key}'")
    tags: Dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags is not None:
        for pair in filter(None, (p.strip() for p in raw_tags.split(","))):
            tag, sep, value = pair.partition(":")
            if not sep or not tag.strip() or not value.strip():
                raise ThresholdSyntaxError(f"Invalid tag selector '{pair}' in '{key}'")
            tags[tag.strip()] = value.strip()
    return match.group("name"), tags


def parse_threshold(
    metric_key: str,
    expression: str,
    abort_on_fail: bool = False,
    delay_abort_eval: float = 0.0,
) -> ThresholdSpec:
    """
    Parse one threshold expression for a metric.

    Raises:
        ThresholdSyntaxError: If the metric key or expression is malformed.
    """
    name, tags = parse_metric_key(metric_key)
    match = _EXPRESSION.match(expression)
    if not match:
        raise ThresholdSyntaxError(f"Invalid threshold expression '{expression}' for '{metric_key}'")
    aggregation = match.group("agg")
    percentile = None
    if aggregation.startswith("p("):
        percentile = float(match.group("pct"))
        if percentile > 100:
            raise ThresholdSyntaxError(f"Percentile out of range in '{expression}'")
        aggregation = "p"
    return ThresholdSpec(
        metric=name,
        tags=tags,
        aggregation=aggregation,
        percentile=percentile,
        comparator=match.group("op"),
        bound=float(match.group("bound")),
        abort_on_fail=abort_on_fail,
        delay_abort_eval=delay_abort_eval,
        expression=expression.strip(),
    )


class ThresholdStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class ThresholdVerdict:
    """Outcome of one threshold spec."""
    spec: ThresholdSpec
    status: ThresholdStatus
    observed: Optional[float] = None
    message: str = ""

    @property
    def passed(self) -> bool:
        return self.status is ThresholdStatus.PASSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.spec.metric_key,
            "threshold": self.spec.expression,
            "status": self.status.value,
            "observed": self.observed,
            "message": self.message,
        }


def evaluate_threshold(
    snapshot: MetricsSnapshot,
    spec: ThresholdSpec,
    elapsed: Optional[float] = None,
) -> ThresholdVerdict:
    """
    Evaluate one spec against a snapshot.

    Args:
        snapshot: Metric snapshot to read.
        spec: Threshold to evaluate.
        elapsed: Run duration in seconds, needed for counter rates.
    """
    kind = snapshot.kind(spec.metric)
    if kind is None or not snapshot.has_data(spec.metric, spec.tags):
        return ThresholdVerdict(spec, ThresholdStatus.NO_DATA, message=f"no samples for {spec.metric_key}")

    if spec.aggregation not in SUPPORTED_AGGREGATIONS[kind]:
        return ThresholdVerdict(
            spec,
            ThresholdStatus.FAILED,
            message=f"aggregation '{spec.aggregation}' does not apply to {kind.value} metric {spec.metric}",
        )

    observed = snapshot.aggregate(spec.metric, spec.aggregation, spec.tags, spec.percentile, elapsed)
    if observed is None:
        return ThresholdVerdict(spec, ThresholdStatus.NO_DATA, message=f"no value for {spec.label}")

    if COMPARATORS[spec.comparator](observed, spec.bound):
        return ThresholdVerdict(spec, ThresholdStatus.PASSED, observed)
    return ThresholdVerdict(
        spec,
        ThresholdStatus.FAILED,
        observed,
        message=f"{spec.expression} not satisfied (observed {observed:.4g})",
    )


def evaluate(
    snapshot: MetricsSnapshot,
    specs: Sequence[ThresholdSpec],
    elapsed: Optional[float] = None,
) -> List[ThresholdVerdict]:
    """Evaluate every spec in order."""
    return [evaluate_threshold(snapshot, spec, elapsed) for spec in specs]


def thresholds_passed(verdicts: Sequence[ThresholdVerdict]) -> bool:
    """Overall verdict: every threshold passed (vacuously true with none)."""
    return all(v.passed for v in verdicts)
