"""Summary: Generative-language provider abstraction and implementations.

Importance: Keeps the intent classifier independent of the model vendor and testable offline.
Alternatives: Call the Gemini SDK directly from the classifier.
"""

from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gscreports.config import AppConfig


class AiProviderError(RuntimeError):
    """Summary: A generation request failed for a reason other than rate limiting.

    Importance: Not retried; the affected queries fall back to default records.
    Alternatives: Return empty text and let parsing fail.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(AiProviderError):
    """The provider answered HTTP 429 or an equivalent quota signal."""


def is_rate_limit_error(exc: BaseException) -> bool:
    """Summary: Recognize rate-limit failures from any provider.

    Importance: Providers report quota errors as typed errors, status codes, or message text.
    Alternatives: Only trust the typed RateLimitError.
    """

    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status", None) == 429:
        return True
    message = str(exc)
    return "429" in message or "Too Many Requests" in message or "Rate limit exceeded" in message


class AiProvider(ABC):
    """Summary: Abstract interface for text generation.

    Importance: Allows switching between Gemini and a deterministic mock without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate a response for a prompt.

        Importance: Returns the text plus latency in milliseconds for logging.
        Alternatives: Return provider-specific response objects directly.
        """


@dataclass
class MockAiProvider(AiProvider):
    """Summary: Deterministic provider for local runs without a Gemini key.

    Importance: Every query classifies as Unknown, so the full pipeline runs offline.
    Alternatives: Use fixture files of recorded model output.
    """

    responses: dict[str, str] = field(
        default_factory=lambda: {"intent_batch": "[]", "intent_single": "{}"}
    )

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        started = time.time()
        response = self.responses.get(purpose, "")
        return response, int((time.time() - started) * 1000)


class GeminiProvider(AiProvider):
    """Summary: Provider targeting the Gemini generateContent REST endpoint.

    Importance: Supplies intent classifications for search queries.
    Alternatives: Use the google-generativeai SDK.
    """

    def __init__(self, api_key: str, model: str, base_url: str, timeout: float) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate text with Gemini.

        Importance: Maps HTTP 429 to RateLimitError so callers can back off.
        Alternatives: Stream partial responses.
        """

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.2},
        }
        url = (
            f"{self._base_url}/models/{urllib.parse.quote(self._model)}:generateContent"
            f"?key={urllib.parse.quote(self._api_key)}"
        )
        request = urllib.request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            if exc.code == 429:
                raise RateLimitError("Gemini request failed: 429 Too Many Requests", status=429) from exc
            raise AiProviderError(f"Gemini request failed: {exc.code} {exc.reason}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise AiProviderError(f"Gemini request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise AiProviderError(f"Gemini request timed out after {self._timeout}s") from exc
        latency_ms = int((time.time() - started) * 1000)
        return _candidate_text(raw), latency_ms


def _candidate_text(raw: dict[str, Any]) -> str:
    candidates = raw.get("candidates") or []
    if not candidates:
        raise AiProviderError("Gemini returned no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting the provider from configuration.

    Importance: The application entry point owns the client; components receive it.
    Alternatives: Initialize a module-level client on import.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        if self.config.ai_provider == "gemini":
            if not self.config.gemini_api_key:
                raise ValueError("GEMINI_API_KEY is required for the gemini provider")
            return GeminiProvider(
                self.config.gemini_api_key,
                self.config.gemini_model,
                self.config.gemini_base_url,
                self.config.http_timeout_seconds,
            )
        return MockAiProvider()

    def model_name(self) -> str:
        return self.config.gemini_model if self.config.ai_provider == "gemini" else "mock"
