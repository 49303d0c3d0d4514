"""Job scheduler commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List

import typer
from rich.markup import escape
from rich.table import Table

from minime.configuration import DEFAULT_CONFIG_PATH, MinimeConfig
from minime.orchestrator import EventBus, JobScheduler, JobStatusSnapshot, TriggerResult
from minime.orchestrator.jobs import register_default_jobs

from .runtime import console, load_config, open_services

jobs_app = typer.Typer(help="Background job scheduler")


async def _run_scheduler(
    config: MinimeConfig, seconds: float, trigger: bool
) -> tuple[List[JobStatusSnapshot], List[TriggerResult]]:
    events = EventBus()
    with open_services(config, events) as services:
        scheduler = JobScheduler(
            services,
            events=events,
            grace_period=config.scheduler.shutdown_grace_seconds,
        )
        register_default_jobs(scheduler, services)
        scheduler.start()
        triggered: List[TriggerResult] = []
        try:
            if trigger:
                triggered = await scheduler.trigger_all_jobs()
            if seconds > 0:
                await asyncio.sleep(seconds)
        finally:
            await scheduler.shutdown()
        return scheduler.get_all_jobs_status(), triggered


@jobs_app.command("run")
def run_jobs(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    seconds: float = typer.Option(0.0, help="How long to keep the scheduler running"),
    trigger: bool = typer.Option(False, "--trigger", help="Run every job once at startup"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Run the scheduler for a bounded time, then print job status."""

    config = load_config(config_path)
    statuses, triggered = asyncio.run(_run_scheduler(config, seconds, trigger))

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "jobs": [s.to_dict() for s in statuses],
                    "triggered": [
                        {"job_id": t.job_id, "success": t.success, "error": t.error}
                        for t in triggered
                    ],
                },
                indent=2,
            )
        )
        return

    table = Table(title="Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Enabled")
    table.add_column("Interval (s)", justify="right")
    table.add_column("Runs", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Last (ms)", justify="right")
    for status in statuses:
        table.add_row(
            status.id,
            "yes" if status.enabled else "no",
            f"{status.interval:g}",
            str(status.stats.runs),
            str(status.stats.failures),
            f"{status.stats.last_duration:.1f}",
        )
    console.print(table)

    failed = [t for t in triggered if not t.success]
    for result in failed:
        error = escape(result.error or "")
        console.print(f"[red]✗ {result.job_id}: {error}[/red]")
