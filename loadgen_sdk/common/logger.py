"""
Structured logging utilities.

This module provides JSON lifecycle logging for load runs alongside the
standard logger helpers used by every module in the SDK.
"""

import logging
import json
from typing import Union
from datetime import datetime

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StructuredLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    The orchestrator uses it for lifecycle events (state transitions, setup
    failures, threshold aborts) so a run can be reconstructed from its log.
    """

    def __init__(self, name: str, level: int = logging.INFO):
        """
        Initialize structured logger.

        Args:
            name: Logger name.
            level: Logging level.
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Add console handler if nothing upstream will print the record
        if not self.logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
            self.logger.addHandler(handler)

    def _log(self, level: int, event: str, **kwargs) -> None:
        """
        Log a structured event.

        Args:
            level: Logging level.
            event: Event name.
            **kwargs: Additional structured fields.
        """
        log_data = {
            "timestamp": datetime.now().isoformat(),
            "event": event,
            **kwargs
        }
        self.logger.log(level, json.dumps(log_data, default=str))

    def info(self, event: str, **kwargs) -> None:
        """Log info event with structured data."""
        self._log(logging.INFO, event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        """Log error event with structured data."""
        self._log(logging.ERROR, event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        """Log warning event with structured data."""
        self._log(logging.WARNING, event, **kwargs)

    def debug(self, event: str, **kwargs) -> None:
        """Log debug event with structured data."""
        self._log(logging.DEBUG, event, **kwargs)


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure root logging for command line runs.

    Args:
        level: Logging level as an int or a name such as "DEBUG".
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=DEFAULT_FORMAT, force=True)


def get_logger(name: str) -> logging.Logger:
    """
    Get a standard Python logger.

    Args:
        name: Logger name.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
