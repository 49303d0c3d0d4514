"""Logging setup for the minime command line.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI.

Environment Variables:
- LOG_LEVEL: Global log level (DEBUG, INFO, WARN, ERROR) [default: INFO]
- LOG_LEVEL_SCHEDULER: Override for ``minime.orchestrator``
- LOG_LEVEL_PIPELINE: Override for ``minime.insights``
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler


# Logger name -> environment override suffix
MODULE_NAME_MAP: Dict[str, str] = {
    "minime.orchestrator": "SCHEDULER",
    "minime.insights": "PIPELINE",
}

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def parse_log_level(level: str) -> int:
    """Parse a level name; unknown names fall back to INFO."""
    return _LEVELS.get(level.strip().upper(), logging.INFO)


def configure_logging(level: Optional[str] = None, *, console: Optional[Console] = None) -> None:
    """Install a rich handler on the ``minime`` logger.

    Args:
        level: Explicit level; otherwise ``LOG_LEVEL`` or INFO
        console: Console to render to (stderr by default)
    """
    root_level = parse_log_level(level or os.getenv("LOG_LEVEL", "INFO"))
    root = logging.getLogger("minime")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(root_level)
    root.propagate = False

    for module_name, suffix in MODULE_NAME_MAP.items():
        override = os.getenv(f"LOG_LEVEL_{suffix}")
        module_logger = logging.getLogger(module_name)
        module_logger.setLevel(parse_log_level(override) if override else logging.NOTSET)
