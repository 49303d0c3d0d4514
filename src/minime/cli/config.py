"""CLI commands for managing minime configuration."""

from __future__ import annotations

import json
from pathlib import Path

import typer
import yaml

from minime.configuration import DEFAULT_CONFIG_PATH, ConfigurationManager, MinimeConfig

from .runtime import console, load_config

config_app = typer.Typer(help="Manage minime configuration")


@config_app.command("init")
def init_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a configuration file with every option at its default."""

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration already exists at {config_path}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(code=1)

    ConfigurationManager(config_path).save(MinimeConfig())
    console.print(f"[green]✓ Configuration initialized at {config_path}[/green]")


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Display the effective configuration."""

    config = load_config(config_path)
    data = config.model_dump(mode="json")
    if json_output:
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


@config_app.command("validate")
def validate_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Validate a configuration file and list every problem found."""

    errors = ConfigurationManager(config_path).validate()
    if errors:
        console.print(f"[red]❌ Configuration invalid at {config_path}[/red]")
        for error in errors:
            console.print(f"   - {error}")
        raise typer.Exit(code=1)
    console.print(f"[green]✅ Configuration valid at {config_path}[/green]")
