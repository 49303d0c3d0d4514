"""Insight pipeline commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from minime.configuration import DEFAULT_CONFIG_PATH
from minime.insights import BatchResult, SQLiteRecordStore
from minime.orchestrator import EventBus

from .runtime import console, load_config, open_services

insights_app = typer.Typer(help="Insight generation and browsing")


@insights_app.command("process")
def process_insights(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Drain the backlog and all unprocessed memories once."""

    config = load_config(config_path)
    with open_services(config, EventBus()) as services:
        result: BatchResult = asyncio.run(services.pipeline.process_unprocessed_memories())

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title="Insight Processing")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in result.to_dict().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@insights_app.command("list")
def list_insights(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    insight_type: Optional[str] = typer.Option(None, "--type", help="Filter by insight type"),
    category: Optional[str] = typer.Option(None, help="Filter by category"),
    project: Optional[str] = typer.Option(None, help="Filter by project id"),
    min_confidence: Optional[float] = typer.Option(None, help="Minimum confidence"),
    include_archived: bool = typer.Option(False, "--archived", help="Include archived insights"),
    limit: int = typer.Option(20, help="Maximum number of insights"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """List stored insights, most confident first."""

    config = load_config(config_path)
    store = SQLiteRecordStore(config.database_path)
    try:
        insights = asyncio.run(
            store.query_insights(
                insight_type=insight_type,
                category=category,
                project_id=project,
                min_confidence=min_confidence,
                include_archived=include_archived,
                limit=limit,
            )
        )
    finally:
        store.close()

    if json_output:
        typer.echo(json.dumps([i.to_dict() for i in insights], indent=2))
        return

    if not insights:
        console.print("[yellow]No insights found[/yellow]")
        return

    table = Table(title=f"Insights ({len(insights)})")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Title")
    table.add_column("Confidence", justify="right")
    table.add_column("Sources", justify="right")
    for insight in insights:
        table.add_row(
            insight.id[:8],
            insight.insight_type,
            insight.category,
            insight.title,
            f"{insight.confidence:.2f}",
            str(len(insight.source_ids)),
        )
    console.print(table)
