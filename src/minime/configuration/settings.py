"""Typed configuration for the scheduler and the insight pipeline.

Every recognized option is enumerated here and validated once at load time,
so read sites never fall back to ad hoc defaults. The YAML file on disk is
optional; a missing file yields the documented defaults.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from minime.errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path.home() / ".minime" / "config" / "minime.yaml"

_WINDOW_PATTERN = re.compile(r"^(\d+)\s*(minutes?|hours?|days?)$", re.IGNORECASE)


def parse_window(value: str) -> timedelta:
    """Parse a window expression such as ``"24 hours"`` or ``"7 days"``."""
    match = _WINDOW_PATTERN.match(value.strip())
    if not match:
        raise ValueError(
            f"Invalid window '{value}': expected '<number> minutes|hours|days'"
        )
    amount = int(match.group(1))
    unit = match.group(2).lower().rstrip("s")
    if unit == "minute":
        return timedelta(minutes=amount)
    if unit == "hour":
        return timedelta(hours=amount)
    return timedelta(days=amount)


class InsightSettings(BaseModel):
    """Insight pipeline configuration.

    Attributes:
        batch_size: Records fetched per page while draining (1-100)
        max_concurrent: Records processed concurrently within a batch (1-20)
        timeout_seconds: Per-record inference timeout (1-300)
        dedup_window: Span during which identical insights merge
        min_confidence_score: Quality gate confidence floor (inclusive)
        require_validation: Persist accepted insights as pending review
        archive_after_days: Age at which the cleanup job archives insights
        permanent_failure_attempts: Attempts before a record is abandoned
        real_time_enabled: Process submitted records immediately when idle
        enable_relationship_finding: Link new insights to existing ones
        enable_technology_extraction: Tag new insights with technologies
        enable_pattern_matching: Record known design and anti-patterns on new insights
    """

    batch_size: int = Field(default=10, ge=1, le=100)
    max_concurrent: int = Field(default=5, ge=1, le=20)
    timeout_seconds: float = Field(default=30.0, ge=1, le=300)
    dedup_window: str = Field(default="24 hours")
    min_confidence_score: float = Field(default=0.3, ge=0.0, le=1.0)
    require_validation: bool = False
    archive_after_days: int = Field(default=90, ge=1, le=365)
    permanent_failure_attempts: int = Field(default=3, ge=1, le=10)
    real_time_enabled: bool = True
    enable_relationship_finding: bool = True
    enable_technology_extraction: bool = True
    enable_pattern_matching: bool = True

    class Config:
        """Pydantic configuration."""
        validate_assignment = True
        extra = "forbid"

    @field_validator("dedup_window")
    @classmethod
    def validate_dedup_window(cls, v: str) -> str:
        """Reject window expressions that cannot be parsed."""
        parse_window(v)
        return v.strip()

    @property
    def dedup_window_delta(self) -> timedelta:
        return parse_window(self.dedup_window)


class SchedulerSettings(BaseModel):
    """Intervals (seconds) for the built-in jobs and shutdown behavior."""

    insight_interval_seconds: float = Field(default=300.0, gt=0)
    dedup_sweep_interval_seconds: float = Field(default=600.0, gt=0)
    cleanup_interval_seconds: float = Field(default=86400.0, gt=0)
    embedding_interval_seconds: float = Field(default=30.0, gt=0)
    analytics_interval_seconds: float = Field(default=60.0, gt=0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)
    disabled_jobs: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""
        validate_assignment = True
        extra = "forbid"


class InferenceSettings(BaseModel):
    """Ollama inference endpoint configuration."""

    base_url: str = "http://localhost:11434"
    model: str = "llama3.1:8b-instruct-q4_0"
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=800, ge=16, le=8192)

    class Config:
        """Pydantic configuration."""
        validate_assignment = True
        extra = "forbid"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class MinimeConfig(BaseModel):
    """Root configuration.

    Attributes:
        version: Configuration schema version
        database_path: SQLite database holding memories, insights and settings
        queue_path: SQLite database holding the processing backlog
        insights: Insight pipeline configuration
        scheduler: Job scheduler configuration
        inference: Inference endpoint configuration
    """

    version: int = 1
    database_path: Path = Field(default=Path.home() / ".minime" / "minime.db")
    queue_path: Path = Field(default=Path.home() / ".minime" / "queue.db")
    insights: InsightSettings = Field(default_factory=InsightSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    inference: InferenceSettings = Field(default_factory=InferenceSettings)

    class Config:
        """Pydantic configuration."""
        validate_assignment = True
        extra = "forbid"

    @field_validator("database_path", "queue_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return Path(v).expanduser()


def _format_validation_error(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]


class ConfigurationManager:
    """Loads, saves and validates the YAML configuration file.

    Attributes:
        config_path: Path to configuration file
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: Optional[MinimeConfig] = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> MinimeConfig:
        """Load and validate configuration.

        Returns:
            Validated configuration (defaults when the file is absent)

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self._config_path.exists():
            logger.debug(
                "Configuration file not found, using defaults",
                extra={"config_path": str(self._config_path)},
            )
            self._config = MinimeConfig()
            return self._config

        with open(self._config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML: {exc}") from exc

        try:
            self._config = MinimeConfig(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(_format_validation_error(exc))}"
            ) from exc

        logger.info(
            "Configuration loaded",
            extra={"config_path": str(self._config_path)},
        )
        return self._config

    def save(self, config: MinimeConfig) -> None:
        """Save configuration to file."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json")
        with open(self._config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        self._config = config

    def validate(self, config_path: Optional[Path] = None) -> List[str]:
        """Validate configuration without loading.

        Returns:
            List of validation errors (empty if valid)
        """
        path = config_path or self._config_path
        if not path.exists():
            return [f"Configuration file not found: {path}"]

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            MinimeConfig(**data)
        except ValidationError as exc:
            return _format_validation_error(exc)
        except yaml.YAMLError as exc:
            return [f"Invalid YAML: {exc}"]

        return []


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "InsightSettings",
    "SchedulerSettings",
    "InferenceSettings",
    "MinimeConfig",
    "ConfigurationManager",
    "parse_window",
]
