"""Insight processors and the registry that routes memories to them."""

from typing import Optional

from ..inference import OllamaInferenceClient
from .base import BaseProcessor
from .bug_analyzer import BugAnalyzerProcessor
from .code_analyzer import CodeAnalyzerProcessor
from .decision_analyzer import DecisionAnalyzerProcessor
from .llm_category import LLMCategoryProcessor
from .pattern_detector import PatternDetectorProcessor
from .registry import ProcessorRegistry


def build_default_registry(
    client: Optional[OllamaInferenceClient] = None,
) -> ProcessorRegistry:
    """Registry with every built-in processor; the LLM processor is the fallback."""
    llm = LLMCategoryProcessor(client or OllamaInferenceClient())
    return ProcessorRegistry(
        [
            llm,
            PatternDetectorProcessor(),
            CodeAnalyzerProcessor(),
            BugAnalyzerProcessor(),
            DecisionAnalyzerProcessor(),
        ],
        fallback=llm,
    )


__all__ = [
    "BaseProcessor",
    "BugAnalyzerProcessor",
    "CodeAnalyzerProcessor",
    "DecisionAnalyzerProcessor",
    "LLMCategoryProcessor",
    "PatternDetectorProcessor",
    "ProcessorRegistry",
    "build_default_registry",
]
