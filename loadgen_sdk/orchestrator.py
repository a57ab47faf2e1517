"""
Test Lifecycle Orchestrator - drives one scenario from setup to report.

State machine:

    IDLE -> SETUP -> RUNNING -> DRAINING -> TEARDOWN -> REPORTED -> DONE

A setup failure skips straight from SETUP to REPORTED: no VU is ever started
without confirmed preconditions. Every other path runs teardown exactly once
and evaluates thresholds against the final metrics snapshot.

Example:
    from loadgen_sdk.orchestrator import TestOrchestrator

    report = TestOrchestrator(scenario).run()
    sys.exit(report.exit_code)
"""

import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from loadgen_sdk.common.errors import ExitCode
from loadgen_sdk.common.logger import StructuredLogger, get_logger
from loadgen_sdk.common.telemetry import get_tracer
from loadgen_sdk.checks import CHECKS_METRIC
from loadgen_sdk.executor import IterationExecutor
from loadgen_sdk.metrics import MetricAggregator, MetricsSnapshot, RateValue
from loadgen_sdk.scenario import Scenario
from loadgen_sdk.scheduler import RampScheduler
from loadgen_sdk.thresholds import ThresholdStatus, ThresholdVerdict, evaluate, thresholds_passed
from loadgen_sdk.vu import VirtualUser

logger = get_logger(__name__)


class LifecycleState(Enum):
    IDLE = "idle"
    SETUP = "setup"
    RUNNING = "running"
    DRAINING = "draining"
    TEARDOWN = "teardown"
    REPORTED = "reported"
    DONE = "done"


@dataclass
class RunReport:
    """
    Final outcome of one run.

    Attributes:
        scenario: Scenario name.
        states: Lifecycle states the run passed through, in order.
        started_at: Wall-clock start of the run (UTC).
        finished_at: Wall-clock end of the run (UTC).
        duration: Seconds spent generating load.
        snapshot: Final metrics snapshot.
        verdicts: One verdict per threshold.
        abort_reason: Why the run ended early, if it did.
        setup_failed: Setup raised and no load was generated.
        interrupted: stop() was called before the profile ended.
        aborted_by_threshold: An abort_on_fail threshold ended the run.
        vus_max: Highest active VU count observed.
        vus_started: Total VUs started over the run.
        teardown_error: Teardown failure, logged but not fatal.
        error: Unexpected engine error while following the profile.
    """
    scenario: str
    states: List[LifecycleState]
    started_at: datetime
    finished_at: datetime
    duration: float
    snapshot: MetricsSnapshot
    verdicts: List[ThresholdVerdict] = field(default_factory=list)
    abort_reason: Optional[str] = None
    setup_failed: bool = False
    interrupted: bool = False
    aborted_by_threshold: bool = False
    vus_max: int = 0
    vus_started: int = 0
    teardown_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def state(self) -> LifecycleState:
        return self.states[-1]

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    @property
    def passed(self) -> bool:
        if self.setup_failed or self.aborted_by_threshold or self.error:
            return False
        return thresholds_passed(self.verdicts)

    @property
    def exit_code(self) -> ExitCode:
        if self.setup_failed:
            return ExitCode.SETUP_FAILED
        if not self.passed:
            return ExitCode.THRESHOLDS_FAILED
        return ExitCode.OK

    def check_results(self) -> List[Dict[str, Any]]:
        """Per-check pass/fail counts, in name order."""
        results = []
        for name in self.snapshot.tag_values(CHECKS_METRIC, "check"):
            value = self.snapshot.value(CHECKS_METRIC, {"check": name})
            if not isinstance(value, RateValue):
                continue
            results.append({
                "name": name,
                "passes": value.passes,
                "fails": value.fails,
                "rate": value.rate,
            })
        return results

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "state": self.state.value,
            "states": [s.value for s in self.states],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration": self.duration,
            "passed": self.passed,
            "exit_code": int(self.exit_code),
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "setup_failed": self.setup_failed,
            "interrupted": self.interrupted,
            "aborted_by_threshold": self.aborted_by_threshold,
            "vus_max": self.vus_max,
            "vus_started": self.vus_started,
            "teardown_error": self.teardown_error,
            "error": self.error,
            "checks": self.check_results(),
            "thresholds": [v.to_dict() for v in self.verdicts],
            "metrics": self.snapshot.to_dict(self.duration or None),
        }


class TestOrchestrator:
    """
    Runs a scenario once through its full lifecycle.

    stop() may be called from any thread (or a signal handler) to end the
    load phase early; the run still drains, tears down and reports.
    """

    # Not a pytest test class
    __test__ = False

    def __init__(
        self,
        scenario: Scenario,
        aggregator: Optional[MetricAggregator] = None,
        threshold_check_interval: float = 2.0,
    ):
        """
        Args:
            scenario: Scenario to run.
            aggregator: Metric sink; a fresh one is created when omitted.
            threshold_check_interval: Seconds between abort_on_fail evaluations.
        """
        self.scenario = scenario
        self.aggregator = aggregator or MetricAggregator()
        self.state = LifecycleState.IDLE
        self.history: List[LifecycleState] = [LifecycleState.IDLE]
        self.scheduler: Optional[RampScheduler] = None
        self._context: Any = None

        self._threshold_check_interval = threshold_check_interval
        self._specs = scenario.options.threshold_specs()
        self._abort_specs = [s for s in self._specs if s.abort_on_fail]
        self._last_abort_check: Optional[float] = None

        self._stop_event = threading.Event()
        self._abort_reason: Optional[str] = None
        self._interrupted = False
        self._aborted_by_threshold = False
        self._lifecycle = StructuredLogger("loadgen.lifecycle")

    def stop(self, reason: str = "interrupted") -> None:
        """Request a graceful stop: VUs finish their current iteration, then teardown runs."""
        if self._stop_event.is_set():
            return
        self._interrupted = True
        self._abort_reason = reason
        self._lifecycle.warning("stop_requested", scenario=self.scenario.name, reason=reason)
        self._stop_event.set()

    def run(self) -> RunReport:
        """
        Execute the scenario.

        Returns:
            RunReport for the run. Setup failures are reported, not raised.

        Raises:
            RuntimeError: If the orchestrator has already run.
        """
        if self.state is not LifecycleState.IDLE:
            raise RuntimeError("an orchestrator can only run once")

        tracer = get_tracer()
        started_at = datetime.now(timezone.utc)
        with tracer.start_as_current_span("loadgen.run") as span:
            span.set_attribute("loadgen.scenario", self.scenario.name)

            self._transition(LifecycleState.SETUP)
            try:
                # Engine wiring is validated before setup touches the service
                scheduler = self._prepare()
                with tracer.start_as_current_span("loadgen.setup"):
                    context = self.scenario.setup()
            except Exception as e:
                reason = f"setup failed: {e}"
                logger.error(f"Scenario '{self.scenario.name}' {reason}", exc_info=True)
                self._lifecycle.error(
                    "setup_failed",
                    scenario=self.scenario.name,
                    error=f"{type(e).__name__}: {e}",
                    status_code=getattr(e, "status_code", None),
                )
                self._abort_reason = reason
                report = self._report(started_at, 0.0, setup_failed=True)
                span.set_attribute("loadgen.passed", False)
                return report

            self._context = context
            elapsed, error = self._run_load(scheduler)

            self._transition(LifecycleState.TEARDOWN)
            teardown_error = None
            try:
                with tracer.start_as_current_span("loadgen.teardown"):
                    self.scenario.teardown(context)
            except Exception as e:
                teardown_error = f"{type(e).__name__}: {e}"
                logger.error(f"Teardown of '{self.scenario.name}' failed: {teardown_error}", exc_info=True)

            report = self._report(started_at, elapsed, teardown_error=teardown_error, error=error)
            span.set_attribute("loadgen.passed", report.passed)
            return report

    def _prepare(self) -> RampScheduler:
        """
        Build the executor and scheduler for this run.

        Raises:
            ValueError: If the success subset names an unknown check.
            MetricTypeError: If the aggregator already binds a built-in metric to another kind.
        """
        options = self.scenario.options
        executor = IterationExecutor(
            self.scenario.iteration,
            self.aggregator,
            checks=self.scenario.checks,
            is_failure=self.scenario.is_failure,
            success_checks=self.scenario.success_checks,
            success_metric=self.scenario.success_metric,
        )
        self.scheduler = RampScheduler(
            options.profile(),
            lambda vu_id: self._make_vu(vu_id, executor),
            control_interval=options.control_interval,
            graceful_stop=options.graceful_stop,
            aggregator=self.aggregator,
            on_tick=self._check_abort_thresholds,
        )
        return self.scheduler

    def _run_load(self, scheduler: RampScheduler):
        """RUNNING and DRAINING phases. Returns (elapsed, engine error or None)."""
        tracer = get_tracer()
        self._transition(LifecycleState.RUNNING, profile=repr(scheduler.profile))
        elapsed = 0.0
        error = None
        try:
            with tracer.start_as_current_span("loadgen.running"):
                elapsed = scheduler.follow(self._stop_event)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self._abort_reason = self._abort_reason or f"engine error: {error}"
            logger.error(f"Load phase of '{self.scenario.name}' failed: {error}", exc_info=True)
            if scheduler.timeline:
                elapsed = scheduler.timeline[-1][0]
        finally:
            self._transition(
                LifecycleState.DRAINING,
                live=scheduler.live_count,
                reason=self._abort_reason or "profile complete",
            )
            with tracer.start_as_current_span("loadgen.draining"):
                scheduler.drain()
        return elapsed, error

    def _make_vu(self, vu_id: int, executor: IterationExecutor) -> VirtualUser:
        options = self.scenario.options
        rng = random.Random(options.seed + vu_id) if options.seed is not None else random.Random()
        return VirtualUser(vu_id, executor, self._context, options.think_time, rng=rng)

    def _check_abort_thresholds(self, elapsed: float) -> None:
        if not self._abort_specs or self._stop_event.is_set():
            return
        if (
            self._last_abort_check is not None
            and elapsed - self._last_abort_check < self._threshold_check_interval
        ):
            return
        self._last_abort_check = elapsed

        due = [s for s in self._abort_specs if elapsed >= s.delay_abort_eval]
        if not due:
            return
        # NO_DATA early in a run is expected and never aborts
        for verdict in evaluate(self.aggregator.snapshot(), due, elapsed):
            if verdict.status is ThresholdStatus.FAILED:
                self._aborted_by_threshold = True
                self._abort_reason = f"threshold '{verdict.spec.label}' crossed: {verdict.message}"
                self._lifecycle.warning(
                    "threshold_abort",
                    scenario=self.scenario.name,
                    threshold=verdict.spec.label,
                    observed=verdict.observed,
                    elapsed=round(elapsed, 3),
                )
                self._stop_event.set()
                return

    def _report(
        self,
        started_at: datetime,
        elapsed: float,
        setup_failed: bool = False,
        teardown_error: Optional[str] = None,
        error: Optional[str] = None,
    ) -> RunReport:
        snapshot = self.aggregator.snapshot()
        verdicts = [] if setup_failed else evaluate(snapshot, self._specs, elapsed or None)
        report = RunReport(
            scenario=self.scenario.name,
            states=self.history,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration=elapsed,
            snapshot=snapshot,
            verdicts=verdicts,
            abort_reason=self._abort_reason,
            setup_failed=setup_failed,
            interrupted=self._interrupted and not setup_failed,
            aborted_by_threshold=self._aborted_by_threshold,
            vus_max=self.scheduler.vus_max if self.scheduler else 0,
            vus_started=self.scheduler.started_total if self.scheduler else 0,
            teardown_error=teardown_error,
            error=error,
        )
        self._transition(
            LifecycleState.REPORTED,
            passed=report.passed,
            exit_code=int(report.exit_code),
            failed_thresholds=[v.spec.label for v in verdicts if v.status is not ThresholdStatus.PASSED],
        )
        self._transition(LifecycleState.DONE)
        return report

    def _transition(self, state: LifecycleState, **fields) -> None:
        previous = self.state
        self.state = state
        self.history.append(state)
        self._lifecycle.info(
            "state_transition",
            scenario=self.scenario.name,
            from_state=previous.value,
            to_state=state.value,
            **fields,
        )
