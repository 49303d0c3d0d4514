"""Tests for minime configuration settings."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from minime.configuration import (
    ConfigurationManager,
    InsightSettings,
    MinimeConfig,
    parse_window,
)
from minime.errors import ConfigurationError


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("24 hours", timedelta(hours=24)),
        ("1 hour", timedelta(hours=1)),
        ("7 days", timedelta(days=7)),
        ("90 Minutes", timedelta(minutes=90)),
    ],
)
def test_parse_window(value: str, expected: timedelta) -> None:
    assert parse_window(value) == expected


@pytest.mark.parametrize("value", ["", "24", "forever", "2 weeks", "-1 days"])
def test_parse_window_rejects_garbage(value: str) -> None:
    with pytest.raises(ValueError):
        parse_window(value)


def test_insight_defaults() -> None:
    settings = InsightSettings()

    assert settings.batch_size == 10
    assert settings.max_concurrent == 5
    assert settings.timeout_seconds == 30.0
    assert settings.dedup_window_delta == timedelta(hours=24)
    assert settings.min_confidence_score == 0.3
    assert settings.require_validation is False
    assert settings.archive_after_days == 90


@pytest.mark.parametrize(
    "overrides",
    [
        {"batch_size": 0},
        {"batch_size": 101},
        {"max_concurrent": 21},
        {"timeout_seconds": 0},
        {"min_confidence_score": 1.5},
        {"dedup_window": "soon"},
        {"unknown_option": True},
    ],
)
def test_insight_settings_validation(overrides) -> None:
    with pytest.raises(ValidationError):
        InsightSettings(**overrides)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = ConfigurationManager(tmp_path / "absent.yaml").load()

    assert config == MinimeConfig()


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config" / "minime.yaml"
    manager = ConfigurationManager(path)
    config = MinimeConfig(database_path=tmp_path / "db.sqlite")
    config.insights.batch_size = 25
    config.scheduler.disabled_jobs = ["analytics_collection"]

    manager.save(config)
    loaded = ConfigurationManager(path).load()

    assert loaded.insights.batch_size == 25
    assert loaded.scheduler.disabled_jobs == ["analytics_collection"]
    assert loaded.database_path == tmp_path / "db.sqlite"


def test_load_rejects_invalid_values(tmp_path: Path) -> None:
    path = tmp_path / "minime.yaml"
    path.write_text(yaml.safe_dump({"insights": {"max_concurrent": 50}}))

    with pytest.raises(ConfigurationError) as excinfo:
        ConfigurationManager(path).load()
    assert "insights.max_concurrent" in excinfo.value.message


def test_load_rejects_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "minime.yaml"
    path.write_text("insights: [unclosed")

    with pytest.raises(ConfigurationError):
        ConfigurationManager(path).load()


def test_validate_lists_problems(tmp_path: Path) -> None:
    path = tmp_path / "minime.yaml"
    path.write_text(
        yaml.safe_dump(
            {"insights": {"batch_size": 0}, "scheduler": {"insight_interval_seconds": -5}}
        )
    )

    errors = ConfigurationManager(path).validate()

    assert len(errors) == 2
    assert any(e.startswith("insights.batch_size") for e in errors)
    assert ConfigurationManager(tmp_path / "absent.yaml").validate() != []
