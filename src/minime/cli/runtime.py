"""Wiring shared by CLI commands: config loading and service construction."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console
from rich.markup import escape

from minime.configuration import ConfigStore, ConfigurationManager, MinimeConfig
from minime.errors import MinimeError, format_error_for_user
from minime.insights import (
    InsightPipeline,
    OllamaInferenceClient,
    ProcessingQueue,
    SQLiteRecordStore,
    build_default_registry,
)
from minime.orchestrator import EventBus
from minime.orchestrator.jobs import JobServices

console = Console()


def load_config(config_path: Path) -> MinimeConfig:
    """Load configuration or exit with a readable error."""
    try:
        return ConfigurationManager(config_path).load()
    except MinimeError as exc:
        console.print(f"[red]{escape(format_error_for_user(exc))}[/red]")
        console.print(escape(exc.message))
        raise typer.Exit(code=1)


@contextmanager
def open_services(config: MinimeConfig, events: EventBus) -> Iterator[JobServices]:
    """Open stores and build the pipeline; closes connections on exit."""
    store = SQLiteRecordStore(config.database_path)
    queue = ProcessingQueue(config.queue_path)
    config_store = ConfigStore(config.database_path)
    registry = build_default_registry(OllamaInferenceClient(config.inference))
    pipeline = InsightPipeline(
        store,
        registry,
        config.insights,
        queue=queue,
        events=events,
    )
    try:
        yield JobServices(
            config=config,
            store=store,
            pipeline=pipeline,
            config_store=config_store,
        )
    finally:
        config_store.close()
        queue.close()
        store.close()
