"""
Iteration Executor - one logical unit of work per call.

The scenario's iteration function builds and sends one request and returns an
IterationResult. The executor times it, converts any exception into a failed
result, runs the check set and folds everything into the aggregator exactly
once.
"""

import json
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.common.telemetry import record_iteration
from loadgen_sdk.metrics import MetricAggregator, MetricKind

logger = get_logger(__name__)

ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"


@dataclass
class IterationResult:
    """
    Outcome of one request.

    Attributes:
        status_code: HTTP status, or 0 when no response was received.
        body: Raw response body.
        duration_micros: Request latency in microseconds.
        tags: Sample tags (e.g. {"operation": "DEPOSIT"}).
        error: Transport or script error description, if any.
    """
    status_code: int
    body: bytes = b""
    duration_micros: int = 0
    tags: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        return self.duration_micros / 1000.0

    @property
    def received(self) -> bool:
        return self.status_code != 0

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def failure(
        cls,
        error: str,
        duration_micros: int = 0,
        tags: Optional[Dict[str, str]] = None,
    ) -> "IterationResult":
        return cls(status_code=0, duration_micros=duration_micros, tags=dict(tags or {}), error=error)


@dataclass
class VUState:
    """Per-VU state handed to every iteration; never shared between VUs."""
    vu_id: int
    rng: random.Random
    iteration: int = 0


FailureClassifier = Callable[[IterationResult], bool]
IterationFn = Callable[[Any, VUState], IterationResult]

StatusSpec = Union[int, Tuple[int, int]]


def default_is_failure(result: IterationResult) -> bool:
    """A request failed when nothing was received or the status is outside 200-399."""
    return result.error is not None or not 200 <= result.status_code < 400


def expected_statuses(*specs: StatusSpec) -> FailureClassifier:
    """
    Build a failure classifier from the statuses a scenario expects.

    Args:
        *specs: Single status codes or inclusive (low, high) ranges.

    Example:
        is_failure = expected_statuses((200, 399), 409)
    """
    if not specs:
        raise ValueError("at least one expected status is required")
    ranges = []
    for spec in specs:
        if isinstance(spec, tuple):
            low, high = spec
        else:
            low = high = spec
        if low > high:
            raise ValueError(f"invalid status range {spec}")
        ranges.append((low, high))

    def is_failure(result: IterationResult) -> bool:
        if result.error is not None or not result.received:
            return True
        return not any(low <= result.status_code <= high for low, high in ranges)

    return is_failure


def weighted_choice(rng: random.Random, weights: Mapping[str, float]) -> str:
    """Pick a key with probability proportional to its weight."""
    total = sum(weights.values())
    if total <= 0 or any(w < 0 for w in weights.values()):
        raise ValueError(f"weights must be non-negative with a positive sum: {dict(weights)}")
    point = rng.random() * total
    cumulative = 0.0
    choice = None
    for key, weight in weights.items():
        if weight <= 0:
            continue
        choice = key
        cumulative += weight
        if point < cumulative:
            break
    return choice


def uniform_amount(rng: random.Random, low: int, high: int) -> int:
    """Draw an integer uniformly from [low, high]."""
    if low > high:
        raise ValueError(f"empty amount range [{low}, {high}]")
    return rng.randint(low, high)


class IterationExecutor:
    """
    Runs one iteration and records its metrics.

    Records per call: iterations, iteration_duration, http_reqs,
    http_req_duration, http_req_failed (tagged with the result's tags plus
    its status), one checks sample per check, and the success counter when
    the iteration succeeded.
    """

    def __init__(
        self,
        iteration: IterationFn,
        aggregator: MetricAggregator,
        checks: Optional[CheckSet] = None,
        is_failure: FailureClassifier = default_is_failure,
        success_checks: Optional[Sequence[str]] = None,
        success_metric: Optional[str] = None,
    ):
        self._iteration = iteration
        self._aggregator = aggregator
        self._checks = checks or CheckSet()
        self._is_failure = is_failure
        self._success_checks = success_checks
        self._success_metric = success_metric

        if success_checks is not None:
            unknown = [n for n in success_checks if n not in self._checks.names]
            if unknown:
                raise ValueError(f"Unknown checks in success subset: {unknown}")

        aggregator.declare(ITERATIONS, MetricKind.COUNTER)
        aggregator.declare(ITERATION_DURATION, MetricKind.TREND)
        aggregator.declare(HTTP_REQS, MetricKind.COUNTER)
        aggregator.declare(HTTP_REQ_DURATION, MetricKind.TREND)
        aggregator.declare(HTTP_REQ_FAILED, MetricKind.RATE)
        if success_metric:
            aggregator.declare(success_metric, MetricKind.COUNTER)

    def execute(self, context: Any, vu: VUState) -> IterationResult:
        """
        Run one iteration for a VU.

        Never raises for script or transport errors; those become a failed
        IterationResult with status 0.
        """
        started = time.perf_counter()
        try:
            result = self._iteration(context, vu)
            if not isinstance(result, IterationResult):
                raise TypeError(
                    f"iteration returned {type(result).__name__}, expected IterationResult"
                )
        except Exception as e:
            elapsed_us = int((time.perf_counter() - started) * 1_000_000)
            logger.debug(f"VU {vu.vu_id} iteration {vu.iteration} failed: {type(e).__name__}: {e}")
            result = IterationResult.failure(f"{type(e).__name__}: {e}", duration_micros=elapsed_us)

        outcomes = self._checks.record(result, self._aggregator)
        success = self._checks.succeeded(outcomes, self._success_checks)
        failed = self._is_failure(result)

        tags = dict(result.tags)
        tags["status"] = str(result.status_code)
        self._aggregator.record_count(HTTP_REQS, tags=tags)
        self._aggregator.record_sample(HTTP_REQ_DURATION, result.duration_ms, tags=tags)
        self._aggregator.record_boolean(HTTP_REQ_FAILED, failed, tags=tags)
        if success and self._success_metric:
            self._aggregator.record_count(self._success_metric)

        self._aggregator.record_count(ITERATIONS)
        self._aggregator.record_sample(ITERATION_DURATION, (time.perf_counter() - started) * 1000.0)
        record_iteration(result.duration_ms, failed, tags)

        vu.iteration += 1
        return result
