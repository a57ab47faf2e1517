"""
loadgen SDK - load generation for HTTP services

Virtual users follow a fixed or staged concurrency profile, run a scenario's
iteration function in a loop, and feed checks and timings into a shared
metric aggregator. Thresholds over the final metrics decide the verdict.
"""

import importlib
from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from loadgen_sdk.checks import Check, CheckSet
    from loadgen_sdk.client import WalletClient
    from loadgen_sdk.executor import IterationExecutor, IterationResult, VUState, expected_statuses
    from loadgen_sdk.metrics import MetricAggregator, MetricKind, MetricsSnapshot
    from loadgen_sdk.options import LoadOptions, Stage, ThinkTime, load_options
    from loadgen_sdk.orchestrator import LifecycleState, RunReport, TestOrchestrator
    from loadgen_sdk.scenario import Scenario
    from loadgen_sdk.scheduler import FixedProfile, RampScheduler, StagedProfile
    from loadgen_sdk.thresholds import ThresholdSpec, ThresholdVerdict, evaluate, parse_threshold

_LAZY_IMPORTS = {
    "Check": ("loadgen_sdk.checks", "Check"),
    "CheckSet": ("loadgen_sdk.checks", "CheckSet"),
    "WalletClient": ("loadgen_sdk.client", "WalletClient"),
    "IterationExecutor": ("loadgen_sdk.executor", "IterationExecutor"),
    "IterationResult": ("loadgen_sdk.executor", "IterationResult"),
    "VUState": ("loadgen_sdk.executor", "VUState"),
    "expected_statuses": ("loadgen_sdk.executor", "expected_statuses"),
    "MetricAggregator": ("loadgen_sdk.metrics", "MetricAggregator"),
    "MetricKind": ("loadgen_sdk.metrics", "MetricKind"),
    "MetricsSnapshot": ("loadgen_sdk.metrics", "MetricsSnapshot"),
    "LoadOptions": ("loadgen_sdk.options", "LoadOptions"),
    "Stage": ("loadgen_sdk.options", "Stage"),
    "ThinkTime": ("loadgen_sdk.options", "ThinkTime"),
    "load_options": ("loadgen_sdk.options", "load_options"),
    "LifecycleState": ("loadgen_sdk.orchestrator", "LifecycleState"),
    "RunReport": ("loadgen_sdk.orchestrator", "RunReport"),
    "TestOrchestrator": ("loadgen_sdk.orchestrator", "TestOrchestrator"),
    "Scenario": ("loadgen_sdk.scenario", "Scenario"),
    "FixedProfile": ("loadgen_sdk.scheduler", "FixedProfile"),
    "RampScheduler": ("loadgen_sdk.scheduler", "RampScheduler"),
    "StagedProfile": ("loadgen_sdk.scheduler", "StagedProfile"),
    "ThresholdSpec": ("loadgen_sdk.thresholds", "ThresholdSpec"),
    "ThresholdVerdict": ("loadgen_sdk.thresholds", "ThresholdVerdict"),
    "evaluate": ("loadgen_sdk.thresholds", "evaluate"),
    "parse_threshold": ("loadgen_sdk.thresholds", "parse_threshold"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_name)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS)
