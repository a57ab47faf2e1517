#!/usr/bin/env python3
"""
Command line interface for loadgen.

Commands:
    loadgen run SCENARIO     Run a shipped scenario and exit with its verdict
    loadgen list             Show the shipped scenarios
    loadgen validate FILE    Validate a load profile YAML file
"""

import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from loadgen_sdk.client import WalletClient
from loadgen_sdk.common.config import EngineSettings
from loadgen_sdk.common.logger import configure_logging, get_logger
from loadgen_sdk.common.telemetry import setup_telemetry, shutdown_telemetry
from loadgen_sdk.options import LoadOptions, load_options
from loadgen_sdk.orchestrator import TestOrchestrator
from loadgen_sdk.reporter import render_summary, write_summary_json
from loadgen_sdk.scenarios import SCENARIOS, get_scenario

app = typer.Typer(
    name="loadgen",
    help="Load generator for the wallet service",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__)


def _error(message: str, title: str = "Error") -> None:
    console.print(Panel(
        f"[red]✗ {message}[/red]",
        title=f"[bold red]{title}[/bold red]",
        box=box.ROUNDED,
        border_style="red",
    ))


def describe_profile(options: LoadOptions) -> str:
    """Short human description of a profile, e.g. "1000 VUs for 60s"."""
    profile = options.profile()
    if options.stages:
        peak = max(stage.target for stage in options.stages)
        return f"{len(options.stages)} stages over {profile.total_duration:.0f}s, peak {peak} VUs"
    return f"{options.vus} VUs for {options.duration:.0f}s"


def _install_stop_handlers(orchestrator: TestOrchestrator):
    """Route SIGINT/SIGTERM to a graceful stop. Returns the previous handlers."""
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _handler(signum, frame):
        name = signal.Signals(signum).name
        console.print(f"\n[yellow]{name} received, stopping after in-flight iterations...[/yellow]")
        orchestrator.stop(f"interrupted by {name}")

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def _restore_handlers(previous) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


@app.command()
def run(
    scenario: str = typer.Argument(..., help="Scenario name (see 'loadgen list')"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Service base URL (default: $BASE_URL)"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="YAML file overriding the scenario's options"),
    vus: Optional[int] = typer.Option(None, "--vus", help="Run a fixed profile with this many VUs"),
    duration: Optional[str] = typer.Option(None, "--duration", "-d", help="Fixed profile duration, e.g. 30s"),
    summary_export: Optional[str] = typer.Option(None, "--summary-export", help="Write the JSON report to this path"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default: $LOADGEN_LOG_LEVEL)"),
):
    """
    Run a scenario.

    Exits 0 when every threshold passes, 99 when a threshold fails and 107
    when setup fails.
    """
    settings = EngineSettings.from_env()
    if base_url or log_level:
        data = settings.model_dump()
        if base_url:
            data["base_url"] = base_url
        if log_level:
            data["log_level"] = log_level
        settings = EngineSettings(**data)
    configure_logging(settings.log_level)

    if scenario not in SCENARIOS:
        _error(f"Unknown scenario '{scenario}'. Available: {', '.join(SCENARIOS)}")
        raise typer.Exit(1)
    if (vus is None) != (duration is None):
        _error("--vus and --duration must be given together")
        raise typer.Exit(1)

    client = WalletClient.from_settings(settings)
    try:
        definition = get_scenario(scenario, client)
        options = definition.options
        if profile:
            options = load_options(profile, base=options)
        if vus is not None:
            options = options.with_fixed_profile(vus, duration)
    except Exception as e:
        client.close()
        _error(f"Invalid options for '{scenario}':\n\n{e}")
        raise typer.Exit(1)

    if settings.otel_enabled:
        setup_telemetry("loadgen", settings.otlp_endpoint)

    console.print()
    console.print(Rule(f"[bold cyan]{scenario}[/bold cyan] → {settings.base_url}"))
    console.print(f"[dim]{describe_profile(options)}[/dim]\n")

    orchestrator = TestOrchestrator(definition.with_options(options))
    previous = _install_stop_handlers(orchestrator)
    try:
        report = orchestrator.run()
    finally:
        _restore_handlers(previous)
        client.close()
        if settings.otel_enabled:
            shutdown_telemetry()

    render_summary(report, console)
    if summary_export:
        path = write_summary_json(report, summary_export)
        console.print(f"[dim]Summary written to[/dim] [cyan]{path}[/cyan]")

    exit_code = int(report.exit_code)
    if exit_code != 0:
        raise typer.Exit(exit_code)


@app.command("list")
def list_scenarios():
    """List the shipped scenarios."""
    table = Table(title="Scenarios", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Profile")
    table.add_column("Thresholds", justify="right")
    table.add_column("Description", style="dim")
    for name, module in SCENARIOS.items():
        table.add_row(
            name,
            describe_profile(module.OPTIONS),
            str(len(module.OPTIONS.threshold_specs())),
            module.DESCRIPTION,
        )
    console.print(table)


@app.command()
def validate(
    file: str = typer.Argument(..., help="Path to a load profile YAML file"),
    scenario: Optional[str] = typer.Option(
        None,
        "--scenario", "-s",
        help="Validate the file as overrides for this scenario",
    ),
):
    """
    Validate a load profile YAML file.

    Without --scenario the file must define a complete profile.
    """
    file_path = Path(file)
    if not file_path.exists():
        _error(f"File not found:\n\n{file_path}")
        raise typer.Exit(1)

    base = None
    if scenario is not None:
        module = SCENARIOS.get(scenario)
        if module is None:
            _error(f"Unknown scenario '{scenario}'. Available: {', '.join(SCENARIOS)}")
            raise typer.Exit(1)
        base = module.OPTIONS

    try:
        options = load_options(str(file_path), base=base)
    except Exception as e:
        _error(f"Validation failed:\n\n{e}")
        raise typer.Exit(1)

    table = Table(title=f"Validation Results: {file_path.name}", box=box.ROUNDED)
    table.add_column("Check", style="cyan")
    table.add_column("Details")
    table.add_row("Schema", "✓ Valid")
    table.add_row("Profile", describe_profile(options))
    table.add_row("Think time", f"{options.think_time.min}s" + (
        f" - {options.think_time.max}s" if options.think_time.max is not None else ""
    ))
    table.add_row("Graceful stop", f"{options.graceful_stop}s")
    for spec in options.threshold_specs():
        abort = " (abortOnFail)" if spec.abort_on_fail else ""
        table.add_row("Threshold", f"{spec.label}{abort}")
    console.print(table)


if __name__ == "__main__":
    app()
