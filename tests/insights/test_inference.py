"""Tests for the Ollama inference client."""

from __future__ import annotations

import json

import httpx
import pytest

from minime.configuration import InferenceSettings
from minime.errors import InferenceError
from minime.insights import OllamaInferenceClient


def _client(handler) -> OllamaInferenceClient:
    return OllamaInferenceClient(
        InferenceSettings(base_url="http://ollama.test", model="test-model"),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio()
async def test_categorize_parses_model_output() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        answer = {
            "has_insight": True,
            "insight_type": "learning",
            "category": "testing",
            "confidence": 0.8,
            "entities": ["fixtures"],
        }
        return httpx.Response(200, json={"response": json.dumps(answer)})

    result = await _client(handler).categorize("Use fixtures for setup", "learning")

    assert result.category == "testing"
    assert result.confidence == 0.8
    assert result.entities == ["fixtures"]
    [request] = requests
    assert request.url == "http://ollama.test/api/generate"
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert body["stream"] is False
    assert body["format"] == "json"
    assert "Use fixtures for setup" in body["prompt"]


@pytest.mark.asyncio()
@pytest.mark.parametrize(("answered", "expected"), [(1.05, 1.0), (-0.2, 0.0)])
async def test_out_of_range_confidence_is_clamped(answered: float, expected: float) -> None:
    answer = {"insight_type": "learning", "category": "testing", "confidence": answered}
    client = _client(
        lambda request: httpx.Response(200, json={"response": json.dumps(answer)})
    )

    result = await client.categorize("content", "learning")

    assert result.confidence == expected


@pytest.mark.asyncio()
async def test_http_error_status_becomes_inference_error() -> None:
    client = _client(lambda request: httpx.Response(503, text="overloaded"))

    with pytest.raises(InferenceError) as excinfo:
        await client.generate("prompt")
    assert excinfo.value.details["status_code"] == 503


@pytest.mark.asyncio()
async def test_timeout_becomes_inference_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(InferenceError, match="timed out"):
        await _client(handler).generate("prompt")


@pytest.mark.asyncio()
async def test_connection_error_becomes_inference_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(InferenceError):
        await _client(handler).generate("prompt")


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "payload",
    [
        {"done": True},
        {"response": "not json at all"},
        {"response": json.dumps({"confidence": "very high"})},
    ],
)
async def test_bad_output_becomes_inference_error(payload) -> None:
    client = _client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(InferenceError):
        await client.categorize("content", "general")


@pytest.mark.asyncio()
async def test_is_available() -> None:
    up = _client(lambda request: httpx.Response(200, json={"models": []}))

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert await up.is_available() is True
    assert await _client(refused).is_available() is False
