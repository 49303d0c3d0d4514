"""Ollama inference client used by the LLM category processor."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from minime.configuration import InferenceSettings
from minime.errors import InferenceError

logger = logging.getLogger(__name__)


CATEGORIZATION_PROMPT = """You categorize developer memories into insights.
Respond with a single JSON object with these keys:
  has_insight (bool), insight_type (string), category (string),
  subcategory (string or null), title (string), summary (string),
  confidence (number between 0 and 1), entities (list of strings),
  technologies (list of strings).
Set has_insight to false when the memory contains nothing worth keeping.

Memory type: {memory_type}
Memory:
{content}
"""


class Categorization(BaseModel):
    """Structured categorization returned by the model."""

    has_insight: bool = True
    insight_type: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    title: str = ""
    summary: str = ""
    confidence: Optional[float] = None
    entities: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(default_factory=list)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return max(0.0, min(1.0, value))


class OllamaInferenceClient:
    """Async client for Ollama's ``/api/generate`` endpoint.

    Every failure mode (transport error, HTTP error status, timeout or
    unparseable output) surfaces as ``InferenceError`` so callers handle a
    single exception type.
    """

    def __init__(
        self,
        settings: Optional[InferenceSettings] = None,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or InferenceSettings()
        self.timeout = timeout
        self._transport = transport

    async def generate(self, prompt: str) -> str:
        """Run one non-streaming JSON-mode generation and return the raw text."""
        request_data = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.settings.temperature,
                "num_predict": self.settings.max_tokens,
            },
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.settings.base_url}/api/generate", json=request_data
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            logger.error("Ollama request timed out", extra={"timeout": self.timeout})
            raise InferenceError(
                f"Inference timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise InferenceError(
                f"Inference endpoint returned {exc.response.status_code}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise InferenceError(f"Inference request failed: {exc}") from exc
        except ValueError as exc:
            raise InferenceError("Inference endpoint returned invalid JSON") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise InferenceError("Inference response is missing the 'response' field")
        return text

    async def categorize(self, content: str, memory_type: str) -> Categorization:
        prompt = CATEGORIZATION_PROMPT.format(memory_type=memory_type, content=content)
        raw = await self.generate(prompt)
        try:
            payload = json.loads(raw)
            result = Categorization.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            logger.warning(
                "Unparseable categorization output",
                extra={"memory_type": memory_type, "output_chars": len(raw)},
            )
            raise InferenceError("Could not parse categorization output") from exc
        return result

    async def is_available(self) -> bool:
        """Check whether the Ollama server answers ``/api/tags``."""
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.get(f"{self.settings.base_url}/api/tags")
        except httpx.HTTPError as exc:
            logger.warning("Ollama server not reachable", extra={"error": str(exc)})
            return False
        return response.status_code == 200
