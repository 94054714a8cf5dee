# =============================================================================
# Multi-Provider LLM Abstraction — Generation + Embedding Capabilities
# =============================================================================
#
# Provides one capability interface for the two things the pipeline needs
# from a model backend:
#   - generate_text(prompt, system) → scored JSON (as text)
#   - embed(text)                   → fixed-length vector
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── GeminiProvider           — Google Generative Language REST API (httpx)
#   │   ├── generate_text()      — :generateContent
#   │   └── embed()              — :embedText, then :embedContent
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API (OpenAI SDK)
#   ├── DemoProvider             — Offline stand-in (demo mode)
#   └── get_llm_provider()       — Factory, reads the Settings passed in
#
# GEMINI TRANSPORT RULES (every request):
#   1. Send with the `x-goog-api-key` header.
#   2. On 401/403/404, resend the same request with `?key=` instead.
#   3. On 5xx or a transport error, retry up to `provider_max_attempts`
#      times, sleeping provider_backoff_seconds * 2**(attempt - 1).
#   4. Anything else non-2xx ends the request with a ProviderError.
# Embeddings additionally walk the endpoint variants in order: a failed
# variant advances to the next one; a 2xx body with no recognisable vector
# raises EmbeddingParseError immediately.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Protocol

import httpx
from openai import OpenAI, OpenAIError

from cv_evaluator.config import Settings
from cv_evaluator.exceptions import EmbeddingParseError, ProviderError
from cv_evaluator.services.embedder import NoShapeMatched, extract_embedding, placeholder_vector

logger = logging.getLogger(__name__)

# Statuses that trigger the query-parameter auth retry
_AUTH_RETRY_STATUSES = frozenset({401, 403, 404})

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```$")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    `content` has markdown code fences removed. `raw` keeps the provider's
    response body for diagnostics.
    """

    content: str
    model: str
    raw: str = ""


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Capability interface implemented once per backend."""

    def generate_text(
        self,
        prompt: str,
        system: str | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a single completion for the prompt.

        Raises:
            ProviderError: Missing credentials, non-2xx after retries,
                or empty output.
        """
        ...

    def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            ProviderError: On transport or provider failure.
            EmbeddingParseError: If the response carries no vector.
        """
        ...


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    text = text.strip()
    text = _CODE_FENCE_START.sub("", text)
    text = _CODE_FENCE_END.sub("", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Implementation 1: Gemini (REST)
# ---------------------------------------------------------------------------


class GeminiProvider:
    """
    Gemini provider over the Generative Language REST API.

    Accepts an optional pre-built httpx.Client so tests can mount an
    httpx.MockTransport; otherwise a client is created with the configured
    timeout.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = settings.gemini_api_key.strip()
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.llm_model
        self._embedding_model = settings.embedding_model
        self._temperature = settings.llm_temperature
        self._max_output_tokens = settings.llm_max_output_tokens
        self._max_attempts = max(settings.provider_max_attempts, 1)
        self._backoff_seconds = settings.provider_backoff_seconds
        self._client = client or httpx.Client(timeout=settings.provider_timeout_seconds)

        logger.info(
            "Initialized GeminiProvider (model=%s, embedding_model=%s)",
            self._model, self._embedding_model,
        )

    # --- Generation ---

    def generate_text(
        self,
        prompt: str,
        system: str | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion with :generateContent."""
        self._require_key()

        # Gemini takes one combined prompt: system instructions first
        combined = f"{system}\n\n{prompt}" if system else prompt
        payload = {
            "contents": [{"parts": [{"text": combined}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": max_output_tokens or self._max_output_tokens,
                "candidateCount": 1,
            },
        }

        url = f"{self._base_url}/models/{self._model}:generateContent"
        response = self._post(url, payload)

        text = strip_code_fences(_candidate_text(response))
        if not text:
            raise ProviderError(
                "Gemini returned empty text or no parts",
                code="EMPTY_RESPONSE",
                status=response.status_code,
                details=response.text,
            )

        return LLMResponse(content=text, model=self._model, raw=response.text)

    # --- Embedding ---

    def embed(self, text: str) -> list[float]:
        """Embed text, trying :embedText then :embedContent."""
        self._require_key()

        base = f"{self._base_url}/models/{self._embedding_model}"
        variants = (
            (f"{base}:embedText", {"text": text}),
            (f"{base}:embedContent", {"content": {"parts": [{"text": text}]}}),
        )

        last_error: ProviderError | None = None
        for url, payload in variants:
            try:
                response = self._post(url, payload)
            except ProviderError as exc:
                logger.warning("Embedding endpoint %s failed: %s", url, exc)
                last_error = exc
                continue

            outcome = extract_embedding(_decode_json(response.text), response.text)
            if isinstance(outcome, NoShapeMatched):
                raise EmbeddingParseError(outcome.raw_body)
            return outcome

        raise ProviderError(
            "Gemini embedding API error",
            code="PROVIDER_ERROR",
            status=last_error.status if last_error else None,
            details=last_error.details if last_error else None,
        )

    # --- Transport ---

    def _require_key(self) -> None:
        if not self._api_key:
            raise ProviderError(
                "Gemini API key not configured. Set GEMINI_API_KEY in .env",
                code="MISSING_API_KEY",
            )

    def _send(self, url: str, payload: dict, use_query_key: bool) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        params = None
        if use_query_key:
            params = {"key": self._api_key}
        else:
            headers["x-goog-api-key"] = self._api_key
        return self._client.post(url, json=payload, headers=headers, params=params)

    def _post(self, url: str, payload: dict) -> httpx.Response:
        """
        POST with auth-style fallback and bounded 5xx retries.

        Returns:
            The first 2xx response.

        Raises:
            ProviderError: With the last status and body seen.
        """
        last_status: int | None = None
        last_body = "No response body"

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._send(url, payload, use_query_key=False)
                if response.status_code in _AUTH_RETRY_STATUSES:
                    response = self._send(url, payload, use_query_key=True)
            except httpx.TransportError as exc:
                last_body = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Gemini transport error (attempt %d/%d): %s",
                    attempt, self._max_attempts, last_body,
                )
                if attempt < self._max_attempts:
                    self._sleep_before_retry(attempt)
                    continue
                break

            last_status, last_body = response.status_code, response.text
            if response.is_success:
                return response

            if response.status_code >= 500 and attempt < self._max_attempts:
                logger.warning(
                    "Gemini returned %d (attempt %d/%d), retrying",
                    response.status_code, attempt, self._max_attempts,
                )
                self._sleep_before_retry(attempt)
                continue
            break

        raise ProviderError(
            "Gemini API error",
            code="PROVIDER_ERROR",
            status=last_status,
            details=last_body,
        )

    def _sleep_before_retry(self, attempt: int) -> None:
        time.sleep(self._backoff_seconds * (2 ** (attempt - 1)))


def _decode_json(text: str) -> object:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _candidate_text(response: httpx.Response) -> str:
    """Pull the generated text out of a :generateContent response body."""
    data = _decode_json(response.text)
    if not isinstance(data, dict):
        return response.text

    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        if isinstance(content, dict):
            parts = content.get("parts")
            if not isinstance(parts, list):
                return ""
            return "".join(
                p["text"] for p in parts
                if isinstance(p, dict) and isinstance(p.get("text"), str)
            )
        if isinstance(content, str):
            return content
        return ""

    if isinstance(data.get("responseText"), str):
        return data["responseText"]
    return response.text


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (OpenAI, DeepSeek, Qwen, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that speaks the OpenAI chat/embeddings protocol.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat

    The SDK's built-in retry (exponential backoff on 429/5xx) is capped at
    the same attempt count as the Gemini transport.
    """

    def __init__(self, settings: Settings) -> None:
        # Without a key every call fails with MISSING_API_KEY, which the
        # scoring generator turns into a heuristic fallback
        self._client: OpenAI | None = None
        if settings.llm_api_key:
            client_kwargs: dict = {
                "api_key": settings.llm_api_key,
                "max_retries": max(settings.provider_max_attempts - 1, 0),
                "timeout": settings.provider_timeout_seconds,
            }
            if settings.llm_base_url:
                client_kwargs["base_url"] = settings.llm_base_url
            self._client = OpenAI(**client_kwargs)
        else:
            logger.warning("LLM_API_KEY not set; OpenAI-compatible calls will fail")

        self._model = settings.llm_model
        self._embedding_model = settings.embedding_model
        self._dimensions = settings.embedding_dimensions
        self._temperature = settings.llm_temperature
        self._max_output_tokens = settings.llm_max_output_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            settings.llm_base_url or "https://api.openai.com/v1",
        )

    def generate_text(
        self,
        prompt: str,
        system: str | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using chat completions."""
        # OpenAI: system prompt goes as the first message
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        client = self._require_client()
        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=max_output_tokens or self._max_output_tokens,
                n=1,
            )
        except OpenAIError as exc:
            raise ProviderError(
                f"OpenAI-compatible completion failed: {exc}",
                status=getattr(exc, "status_code", None),
            ) from exc

        if not response.choices:
            raise ProviderError(
                "OpenAI-compatible provider returned no choices",
                code="EMPTY_RESPONSE",
            )
        message = response.choices[0].message
        raw_content = message.content if message is not None else None
        content = strip_code_fences(raw_content if isinstance(raw_content, str) else "")
        if not content:
            raise ProviderError(
                "OpenAI-compatible provider returned empty content",
                code="EMPTY_RESPONSE",
            )

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            raw=response.model_dump_json(),
        )

    def embed(self, text: str) -> list[float]:
        """Embed text with the embeddings endpoint."""
        client = self._require_client()
        try:
            response = client.embeddings.create(
                model=self._embedding_model,
                input=text,
                dimensions=self._dimensions,
            )
        except OpenAIError as exc:
            raise ProviderError(
                f"OpenAI-compatible embedding failed: {exc}",
                status=getattr(exc, "status_code", None),
            ) from exc

        raw = response.model_dump_json()
        outcome = extract_embedding(response.model_dump(), raw)
        if isinstance(outcome, NoShapeMatched):
            raise EmbeddingParseError(raw)
        return outcome

    def _require_client(self) -> OpenAI:
        if self._client is None:
            raise ProviderError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env",
                code="MISSING_API_KEY",
            )
        return self._client


# ---------------------------------------------------------------------------
# Implementation 3: Demo (offline)
# ---------------------------------------------------------------------------


class DemoProvider:
    """
    Offline stand-in used in demo mode.

    Generation always fails with code DEMO_MODE, so the scoring generator
    takes its heuristic path; embeddings are deterministic placeholders.
    """

    def __init__(self, settings: Settings) -> None:
        self._dimensions = settings.embedding_dimensions

    def generate_text(
        self,
        prompt: str,
        system: str | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMResponse:
        raise ProviderError(
            "Generative backend disabled in demo mode",
            code="DEMO_MODE",
        )

    def embed(self, text: str) -> list[float]:
        return placeholder_vector(self._dimensions, seed=len(text) or 1)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_KNOWN_PROVIDER_TYPES = {"gemini", "openai_compatible"}


def get_llm_provider(settings: Settings) -> LLMProvider:
    """
    Build the provider selected by settings.

    - demo_mode → DemoProvider
    - "openai_compatible" → OpenAICompatibleProvider
    - "gemini" → GeminiProvider

    Raises:
        ValueError: If llm_provider names an unknown backend.
    """
    if settings.demo_mode:
        logger.info("Demo mode: using offline DemoProvider")
        return DemoProvider(settings)

    if settings.llm_provider not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{settings.llm_provider}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    if settings.llm_provider == "openai_compatible":
        return OpenAICompatibleProvider(settings)
    return GeminiProvider(settings)
