"""
End-of-test summary.

Renders a RunReport to the terminal with rich and exports it as JSON.

Example:
    from loadgen_sdk.reporter import render_summary, write_summary_json

    render_summary(report)
    write_summary_json(report, "reports/summary.json")
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from loadgen_sdk.common.logger import get_logger

if TYPE_CHECKING:
    from loadgen_sdk.orchestrator import RunReport

logger = get_logger(__name__)

_STATUS_STYLE = {
    "passed": "[green]✓ passed[/green]",
    "failed": "[red]✗ failed[/red]",
    "no_data": "[yellow]? no data[/yellow]",
}


def _number(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return f"{value:.0f}"
    if abs(value) < 1:
        return f"{value:.4f}"
    return f"{value:.2f}"


def format_metric_values(kind: str, values: Dict[str, Any]) -> str:
    """
    Format one metric's summary values on a single line.

    Trends print as "avg=12.1 min=3 med=10 max=80 p(90)=20 p(95)=25 p(99)=40",
    rates as a percentage with pass/fail counts, counters as count and rate.
    """
    if kind == "rate":
        rate = values.get("rate")
        percent = "-" if rate is None else f"{rate * 100:.2f}%"
        return f"{percent}  ✓ {values.get('passes', 0)}  ✗ {values.get('fails', 0)}"
    if kind == "counter":
        text = str(values.get("count", 0))
        if "rate" in values:
            text += f"  {values['rate']:.2f}/s"
        return text
    if not values.get("count"):
        return "no samples"
    return " ".join(
        f"{key}={_number(values[key])}"
        for key in ("avg", "min", "med", "max", "p(90)", "p(95)", "p(99)")
        if key in values
    )


def render_summary(report: "RunReport", console: Optional[Console] = None) -> None:
    """Print the checks, metrics and thresholds of a run."""
    console = console or Console()

    header = Table.grid(padding=(0, 2))
    header.add_column(style="bold")
    header.add_column()
    header.add_row("Scenario", report.scenario)
    header.add_row("Duration", f"{report.duration:.1f}s")
    header.add_row("VUs max", str(report.vus_max))
    header.add_row("VUs started", str(report.vus_started))
    if report.abort_reason:
        header.add_row("Aborted", f"[yellow]{report.abort_reason}[/yellow]")
    if report.teardown_error:
        header.add_row("Teardown", f"[yellow]{report.teardown_error}[/yellow]")
    console.print(Panel(header, title="[bold cyan]Load Test[/bold cyan]", box=box.ROUNDED, border_style="cyan"))

    checks = report.check_results()
    if checks:
        table = Table(title="Checks", box=box.ROUNDED)
        table.add_column("Check", style="cyan")
        table.add_column("Rate", justify="right")
        table.add_column("✓", justify="right", style="green")
        table.add_column("✗", justify="right", style="red")
        for check in checks:
            rate = check["rate"]
            table.add_row(
                check["name"],
                "-" if rate is None else f"{rate * 100:.2f}%",
                str(check["passes"]),
                str(check["fails"]),
            )
        console.print(table)

    metrics = report.snapshot.to_dict(report.duration or None)
    if metrics:
        table = Table(title="Metrics", box=box.ROUNDED)
        table.add_column("Metric", style="cyan")
        table.add_column("Type", style="dim")
        table.add_column("Values")
        for name, entry in metrics.items():
            table.add_row(name, entry["type"], format_metric_values(entry["type"], entry["values"]))
        console.print(table)

    if report.verdicts:
        table = Table(title="Thresholds", box=box.ROUNDED)
        table.add_column("Metric", style="cyan")
        table.add_column("Threshold")
        table.add_column("Observed", justify="right")
        table.add_column("Status")
        for verdict in report.verdicts:
            table.add_row(
                verdict.spec.metric_key,
                verdict.spec.expression,
                _number(verdict.observed),
                _STATUS_STYLE[verdict.status.value],
            )
        console.print(table)

    if report.passed:
        console.print(Panel(
            "[green bold]✓ All thresholds passed[/green bold]",
            box=box.ROUNDED,
            border_style="green",
        ))
    else:
        reason = report.abort_reason or "one or more thresholds failed"
        console.print(Panel(
            f"[red bold]✗ Run failed[/red bold] (exit code {int(report.exit_code)})\n\n{reason}",
            box=box.ROUNDED,
            border_style="red",
        ))


def write_summary_json(report: "RunReport", path: str) -> Path:
    """
    Write the report as JSON.

    Args:
        report: Report to export.
        path: Output file; parent directories are created.

    Returns:
        Path of the written file.
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2, default=str)
    logger.info(f"Summary written to {output}")
    return output
