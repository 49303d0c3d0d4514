"""Configuration for minime: typed settings and the runtime settings table."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    ConfigurationManager,
    InferenceSettings,
    InsightSettings,
    MinimeConfig,
    SchedulerSettings,
    parse_window,
)
from .store import ConfigStore

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigurationManager",
    "ConfigStore",
    "InferenceSettings",
    "InsightSettings",
    "MinimeConfig",
    "SchedulerSettings",
    "parse_window",
]
