"""
Reporter module - terminal summary and JSON export of run reports.
"""

from loadgen_sdk.reporter.summary import format_metric_values, render_summary, write_summary_json

__all__ = ["format_metric_values", "render_summary", "write_summary_json"]
