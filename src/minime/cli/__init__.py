"""Command line entry points for minime."""

from typing import Optional

import typer
from typer import Typer

from ..logging_config import configure_logging
from .config import config_app
from .insights import insights_app
from .jobs import jobs_app


cli = Typer(help="minime command line tools")


@cli.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARN or ERROR"),
) -> None:
    configure_logging(log_level)


cli.add_typer(config_app, name="config")
cli.add_typer(insights_app, name="insights")
cli.add_typer(jobs_app, name="jobs")

__all__ = ["cli", "config_app", "insights_app", "jobs_app"]
