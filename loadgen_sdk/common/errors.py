"""
Error taxonomy and process exit codes.

Only precondition failures propagate out of a run. Iteration, check and
threshold failures are converted into metrics and verdicts instead.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit statuses reported by the CLI."""
    OK = 0
    THRESHOLDS_FAILED = 99
    SETUP_FAILED = 107


class LoadGenError(Exception):
    """Base class for engine errors."""
    pass


class PreconditionError(LoadGenError):
    """Setup could not establish the external state the run depends on."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class MetricTypeError(LoadGenError, TypeError):
    """A metric name was reused with a different metric kind."""
    pass


class ThresholdSyntaxError(LoadGenError, ValueError):
    """A threshold expression could not be parsed."""
    pass
