"""
Common utilities for the load generation SDK.
"""

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loadgen_sdk.common.config import EngineSettings
    from loadgen_sdk.common.telemetry import setup_telemetry, get_tracer, record_iteration
    from loadgen_sdk.common.logger import get_logger, configure_logging, StructuredLogger
    from loadgen_sdk.common.errors import (
        ExitCode,
        LoadGenError,
        PreconditionError,
        MetricTypeError,
        ThresholdSyntaxError,
    )

_LAZY_IMPORTS = {
    "EngineSettings": ("loadgen_sdk.common.config", "EngineSettings"),
    "setup_telemetry": ("loadgen_sdk.common.telemetry", "setup_telemetry"),
    "get_tracer": ("loadgen_sdk.common.telemetry", "get_tracer"),
    "record_iteration": ("loadgen_sdk.common.telemetry", "record_iteration"),
    "get_logger": ("loadgen_sdk.common.logger", "get_logger"),
    "configure_logging": ("loadgen_sdk.common.logger", "configure_logging"),
    "StructuredLogger": ("loadgen_sdk.common.logger", "StructuredLogger"),
    "ExitCode": ("loadgen_sdk.common.errors", "ExitCode"),
    "LoadGenError": ("loadgen_sdk.common.errors", "LoadGenError"),
    "PreconditionError": ("loadgen_sdk.common.errors", "PreconditionError"),
    "MetricTypeError": ("loadgen_sdk.common.errors", "MetricTypeError"),
    "ThresholdSyntaxError": ("loadgen_sdk.common.errors", "ThresholdSyntaxError"),
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

__all__ = [
    "EngineSettings",
    "setup_telemetry",
    "get_tracer",
    "record_iteration",
    "get_logger",
    "configure_logging",
    "StructuredLogger",
    "ExitCode",
    "LoadGenError",
    "PreconditionError",
    "MetricTypeError",
    "ThresholdSyntaxError",
]
