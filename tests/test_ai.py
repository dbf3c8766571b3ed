"""Summary: Tests for AI abstraction layer.

Importance: Ensures providers report rate limits in a way the classifier recognizes.
Alternatives: Skip AI testing and rely on manual verification.
"""

from __future__ import annotations

import io
import json
import urllib.error

import pytest

from gscreports.ai import (
    AiProviderError,
    AiProviderFactory,
    GeminiProvider,
    MockAiProvider,
    RateLimitError,
    is_rate_limit_error,
)


class _FakeResponse(io.BytesIO):
    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()


def test_mock_ai_provider_returns_response() -> None:
    """Summary: Verify mock AI provider returns deterministic text.

    Importance: Confirms basic AI abstraction behavior for tests.
    Alternatives: Use live providers in integration tests only.
    """

    provider = MockAiProvider()
    response, latency = provider.generate_text("Hello", "intent_batch")
    assert response == "[]"
    assert latency >= 0


def test_is_rate_limit_error() -> None:
    assert is_rate_limit_error(RateLimitError("quota"))
    assert is_rate_limit_error(AiProviderError("upstream", status=429))
    assert is_rate_limit_error(RuntimeError("Too Many Requests"))
    assert not is_rate_limit_error(AiProviderError("bad request", status=400))


def test_gemini_provider_extracts_candidate_text(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"candidates": [{"content": {"parts": [{"text": "[{\"query\": "}, {"text": "\"q\"}]"}]}}]}
    seen: dict[str, object] = {}

    def _fake_urlopen(request: object, timeout: float) -> _FakeResponse:
        seen["url"] = request.full_url
        seen["timeout"] = timeout
        return _FakeResponse(json.dumps(payload).encode("utf-8"))

    monkeypatch.setattr("urllib.request.urlopen", _fake_urlopen)
    provider = GeminiProvider("key", "gemini-2.0-flash", "https://gemini.test/v1beta/", timeout=7)
    text, _ = provider.generate_text("prompt", "intent_batch")
    assert text == "[{\"query\": \"q\"}]"
    assert seen["url"] == "https://gemini.test/v1beta/models/gemini-2.0-flash:generateContent?key=key"
    assert seen["timeout"] == 7


def test_gemini_provider_maps_429(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(*_args: object, **_kwargs: object) -> None:
        raise urllib.error.HTTPError("https://gemini.test", 429, "Too Many Requests", {}, io.BytesIO(b""))

    monkeypatch.setattr("urllib.request.urlopen", _raise)
    with pytest.raises(RateLimitError):
        GeminiProvider("key", "m", "https://gemini.test", timeout=1).generate_text("p", "intent_single")


def test_factory_requires_key_for_gemini(make_config) -> None:
    with pytest.raises(ValueError):
        AiProviderFactory(make_config(ai_provider="gemini")).build()
    provider = AiProviderFactory(make_config(ai_provider="gemini", gemini_api_key="k")).build()
    assert isinstance(provider, GeminiProvider)
    assert AiProviderFactory(make_config()).model_name() == "mock"
