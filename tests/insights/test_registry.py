"""Tests for processor routing."""

from __future__ import annotations

from typing import List

import pytest

from minime.errors import DuplicateProcessorError, NoProcessorError
from minime.insights import BaseProcessor, CandidateInsight, MemoryRecord, ProcessorRegistry
from minime.insights.processors import build_default_registry


class StubProcessor(BaseProcessor):
    def __init__(self, name: str, memory_types: tuple) -> None:
        self.name = name
        self.memory_types = memory_types

    async def detect(self, record: MemoryRecord) -> List[CandidateInsight]:
        return []


def test_resolve_by_memory_type() -> None:
    code = StubProcessor("code", ("code", "refactor"))
    bugs = StubProcessor("bugs", ("bug",))
    registry = ProcessorRegistry([code, bugs])

    assert registry.resolve("refactor") is code
    assert registry.resolve("bug") is bugs
    assert "bug" in registry
    assert registry.memory_types() == {"bug": "bugs", "code": "code", "refactor": "code"}


def test_unknown_type_without_fallback_raises() -> None:
    registry = ProcessorRegistry([StubProcessor("code", ("code",))])

    with pytest.raises(NoProcessorError) as excinfo:
        registry.resolve("poem")
    assert excinfo.value.details["memory_type"] == "poem"


def test_unknown_type_uses_fallback() -> None:
    fallback = StubProcessor("general", ())
    registry = ProcessorRegistry([StubProcessor("code", ("code",))], fallback=fallback)

    assert registry.resolve("poem") is fallback
    assert registry.resolve("code").name == "code"


def test_strategy_wins_over_type() -> None:
    code = StubProcessor("code", ("code",))
    bugs = StubProcessor("bugs", ("bug",))
    registry = ProcessorRegistry([code, bugs])

    assert registry.resolve("code", strategy="bugs") is bugs
    with pytest.raises(NoProcessorError):
        registry.resolve("code", strategy="missing")


def test_duplicate_claims_are_rejected() -> None:
    registry = ProcessorRegistry([StubProcessor("code", ("code",))])

    with pytest.raises(DuplicateProcessorError):
        registry.register(StubProcessor("other", ("code",)))
    with pytest.raises(DuplicateProcessorError):
        registry.register(StubProcessor("code", ("snippet",)))

    assert registry.memory_types() == {"code": "code"}


def test_default_registry_routes_builtin_types() -> None:
    registry = build_default_registry()

    assert registry.resolve("code").name == "code_analyzer"
    assert registry.resolve("architecture").name == "code_analyzer"
    assert registry.resolve("refactor").name == "pattern_detector"
    assert registry.resolve("bug").name == "bug_analyzer"
    assert registry.resolve("design_decisions").name == "decision_analyzer"
    assert registry.resolve("working-notes").name == "llm_category"
    assert registry.resolve("something-new").name == "llm_category"
    assert len(registry.processors()) == 5
