"""CLI for autofinish.

Provides commands to inspect how a TODO list is parsed and sequenced, and to
run it end to end against the Claude Code CLI.
"""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import TextIO

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from autofinish.agent_channel import ClaudeCliChannel
from autofinish.config import AutoFinishConfig, RunOptions
from autofinish.errors import AgentDispatchError, InputError
from autofinish.input_parser import parse_input
from autofinish.models import SessionResult, Task
from autofinish.orchestrator import SessionOrchestrator
from autofinish.progress import CompositeProgressSink, ConsoleProgressSink, WebhookProgressSink
from autofinish.sequencer import TaskSequencer
from autofinish.telemetry import create_metrics, setup_telemetry

console = Console()

STATUS_COLORS = {
    "completed": "green",
    "failed": "red",
    "paused": "yellow",
    "cancelled": "yellow",
    "pending": "white",
}


@click.group()
@click.version_option(package_name="autofinish")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """autofinish - Drive a TODO list to completion with a coding agent."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("todo_file", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Print tasks as JSON")
def parse(todo_file: TextIO, as_json: bool) -> None:
    """Show the tasks found in TODO_FILE ('-' for stdin)."""
    tasks = _parse_or_exit(todo_file.read())

    if as_json:
        click.echo(json.dumps([asdict(t) for t in tasks], indent=2, default=str))
        return

    table = Table(title=f"{len(tasks)} task(s)")
    table.add_column("Line", justify="right")
    table.add_column("Pattern")
    table.add_column("Category")
    table.add_column("Task")
    table.add_column("Hints")
    for task in tasks:
        color = STATUS_COLORS.get(task.status, "white")
        table.add_row(
            str(task.line_number),
            task.pattern,
            task.category or "-",
            f"[{color}]{escape(task.description)}[/{color}]",
            escape(", ".join(task.dependency_hints)) or "-",
        )
    console.print(table)


@cli.command()
@click.argument("todo_file", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Print the analysis as JSON")
def plan(todo_file: TextIO, as_json: bool) -> None:
    """Show the execution order and dependencies for TODO_FILE."""
    tasks = _parse_or_exit(todo_file.read())
    sequencer = TaskSequencer()
    ordered = sequencer.sequence(tasks)
    analysis = sequencer.analyze(tasks)

    if as_json:
        click.echo(
            json.dumps(
                {"order": [t.id for t in ordered], "analysis": asdict(analysis)},
                indent=2,
                default=str,
            )
        )
        return

    table = Table(title="Execution Order")
    table.add_column("#", justify="right")
    table.add_column("Category")
    table.add_column("Task")
    for index, task in enumerate(ordered, start=1):
        table.add_row(str(index), task.category or "-", escape(task.description))
    console.print(table)

    console.print(
        f"Dependencies: {analysis.total_dependencies} "
        f"(explicit {analysis.explicit_dependencies}, "
        f"type {analysis.type_dependencies}, "
        f"implicit {analysis.implicit_dependencies})"
    )
    for edge in analysis.removed_edges:
        console.print(
            f"[yellow]Removed circular dependency:[/yellow] {edge.from_id} -> {edge.to_id} "
            f"({edge.provenance}, {edge.confidence:.2f})"
        )
    for recommendation in analysis.recommendations:
        console.print(f"[dim]{recommendation}[/dim]")


@cli.command()
@click.argument("todo_file", type=click.File("r"))
@click.option("--stop-on-error", is_flag=True, help="Abort after the first failed task")
@click.option("--max-attempts", type=int, default=None, help="Confirmation attempts per task")
@click.option("--task-timeout", type=float, default=None, help="Whole-task timeout in seconds")
@click.option("--project", "project_path", default=None, help="Working directory for the agent")
@click.option("--json", "as_json", is_flag=True, help="Print the session result as JSON")
def run(
    todo_file: TextIO,
    stop_on_error: bool,
    max_attempts: int | None,
    task_timeout: float | None,
    project_path: str | None,
    as_json: bool,
) -> None:
    """Run every task in TODO_FILE through the agent."""
    options = RunOptions(
        stop_on_error=stop_on_error,
        max_confirmation_attempts=max_attempts,
        task_timeout_seconds=task_timeout,
        project_path=project_path,
    )
    try:
        result = asyncio.run(_run_session(todo_file.read(), options, quiet=as_json))
    except (InputError, AgentDispatchError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(asdict(result), indent=2, default=str))
    else:
        _print_session_summary(result)
    sys.exit(0 if result.success else 1)


async def _run_session(text: str, options: RunOptions, quiet: bool = False) -> SessionResult:
    """Internal async implementation of a session run."""
    config = AutoFinishConfig.from_env()
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    sinks = [] if quiet else [ConsoleProgressSink(console)]
    if config.progress_webhook_url:
        sinks.append(WebhookProgressSink(config.progress_webhook_url))

    orchestrator = SessionOrchestrator(
        ClaudeCliChannel(config, cwd=options.project_path),
        config,
        progress_sink=CompositeProgressSink(sinks),
        tracer=tracer,
    )
    await orchestrator.start()
    try:
        return await orchestrator.run(text, options)
    finally:
        await orchestrator.shutdown()


def _parse_or_exit(text: str) -> list[Task]:
    try:
        tasks = parse_input(text)
    except InputError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        sys.exit(1)
    return tasks


def _print_session_summary(result: SessionResult) -> None:
    """Print the per-task table and session totals."""
    table = Table(title=f"Session {result.session_id}")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Path")
    table.add_column("Duration", justify="right")
    table.add_column("Reason")
    for task_result in result.results:
        color = STATUS_COLORS.get(task_result.status, "white")
        table.add_row(
            escape(task_result.description),
            f"[{color}]{task_result.status.upper()}[/{color}]",
            task_result.path,
            _format_duration(task_result.duration_seconds),
            task_result.reason or "-",
        )
    console.print(table)

    color = "green" if result.success else ("yellow" if result.status == "cancelled" else "red")
    console.print(f"\n[bold {color}]Session {result.status.upper()}[/bold {color}]")
    console.print(f"  Tasks: {result.completed_tasks}/{result.total_tasks} completed")
    console.print(f"  Duration: {_format_duration(result.duration_seconds)}")
    if result.paused_tasks > 0:
        console.print(f"  [yellow]Paused: {result.paused_tasks}[/yellow]")
    if result.failed_tasks > 0:
        console.print(f"  [red]Failed: {result.failed_tasks}[/red]")


def _format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m {secs}s"
