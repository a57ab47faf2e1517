"""
Scenario definition.

A scenario is static data plus three function slots: setup() builds the
shared context, iteration(context, vu) performs one unit of work, and
teardown(context) reports on the final state. The orchestrator drives the
slots; nothing here holds run state.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from loadgen_sdk.checks import CheckSet
from loadgen_sdk.executor import FailureClassifier, IterationFn, default_is_failure
from loadgen_sdk.options import LoadOptions


def _no_setup() -> Any:
    return None


def _no_teardown(context: Any) -> None:
    return None


@dataclass(frozen=True)
class Scenario:
    """
    Immutable definition of one load test.

    Attributes:
        name: Scenario name used in logs and reports.
        options: Load profile, thresholds and pacing.
        iteration: Function called once per VU iteration.
        setup: Called once before load starts; its return value is the context.
        teardown: Called once with the context after all VUs have drained.
        checks: Named predicates evaluated on every iteration result.
        success_checks: Checks that make up the success flag (None means all).
        success_metric: Counter incremented for every successful iteration.
        is_failure: Classifier for the http_req_failed rate.
        description: One-line summary shown by the CLI.
    """
    name: str
    options: LoadOptions
    iteration: IterationFn
    setup: Callable[[], Any] = _no_setup
    teardown: Callable[[Any], None] = _no_teardown
    checks: CheckSet = field(default_factory=CheckSet)
    success_checks: Optional[Sequence[str]] = None
    success_metric: Optional[str] = None
    is_failure: FailureClassifier = default_is_failure
    description: str = ""

    def with_options(self, options: LoadOptions) -> "Scenario":
        """Return a copy running with different load options."""
        return dataclasses.replace(self, options=options)
