# =============================================================================
# Embedding Service — Fixed-Length Vectors (Provider-Agnostic)
# =============================================================================
#
# Turns chunk text and retrieval queries into vectors for the vector index.
#
# MODES:
#   - Demo/offline: a deterministic placeholder vector seeded from the input
#     length. Not semantically meaningful, but stable across runs so tests
#     and demos are reproducible. No network access.
#   - Live: input truncated to `embedding_max_input_chars`, then sent to the
#     configured provider's `embed()` (see llm.py for transport, retries and
#     auth fallback).
#
# RESPONSE SHAPES:
# Embedding APIs disagree on where the vector lives in the JSON body. The
# known envelopes are listed in EMBEDDING_SHAPES as typed matchers; they are
# tried in order and the first match wins. When none matches, the caller
# gets an EmbeddingParseError carrying the raw body for diagnosis.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cv_evaluator.config import Settings

if TYPE_CHECKING:
    from cv_evaluator.services.llm import LLMProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response Shape Matchers
# ---------------------------------------------------------------------------


def _is_vector(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    )


def _first_item(body: dict, key: str) -> dict | None:
    items = body.get(key)
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _match_flat_embedding(body: dict) -> list[float] | None:
    # {"embedding": [...]}
    value = body.get("embedding")
    return value if _is_vector(value) else None


def _match_embedding_values(body: dict) -> list[float] | None:
    # {"embedding": {"values": [...]}}  (Gemini embedContent)
    inner = body.get("embedding")
    if isinstance(inner, dict) and _is_vector(inner.get("values")):
        return inner["values"]
    return None


def _match_nested_embedding(body: dict) -> list[float] | None:
    # {"embedding": {"embedding": [...]}}
    inner = body.get("embedding")
    if isinstance(inner, dict) and _is_vector(inner.get("embedding")):
        return inner["embedding"]
    return None


def _match_embeddings_list(body: dict) -> list[float] | None:
    # {"embeddings": [{"embedding": [...]}]} or {"embeddings": [{"values": [...]}]}
    item = _first_item(body, "embeddings")
    if item is None:
        return None
    for key in ("embedding", "values"):
        if _is_vector(item.get(key)):
            return item[key]
    return None


def _match_results_list(body: dict) -> list[float] | None:
    # {"results": [{"embedding": [...]}]}
    item = _first_item(body, "results")
    if item is not None and _is_vector(item.get("embedding")):
        return item["embedding"]
    return None


def _match_data_embedding(body: dict) -> list[float] | None:
    # {"data": [{"embedding": [...]}]}  (OpenAI-style)
    item = _first_item(body, "data")
    if item is not None and _is_vector(item.get("embedding")):
        return item["embedding"]
    return None


def _match_data_values(body: dict) -> list[float] | None:
    # {"data": [{"values": [...]}]}
    item = _first_item(body, "data")
    if item is not None and _is_vector(item.get("values")):
        return item["values"]
    return None


@dataclass(frozen=True)
class EmbeddingShape:
    """A named response envelope and the function that extracts its vector."""

    name: str
    match: Callable[[dict], list[float] | None]


EMBEDDING_SHAPES: tuple[EmbeddingShape, ...] = (
    EmbeddingShape("embedding", _match_flat_embedding),
    EmbeddingShape("embedding.values", _match_embedding_values),
    EmbeddingShape("embedding.embedding", _match_nested_embedding),
    EmbeddingShape("embeddings[0]", _match_embeddings_list),
    EmbeddingShape("results[0].embedding", _match_results_list),
    EmbeddingShape("data[0].embedding", _match_data_embedding),
    EmbeddingShape("data[0].values", _match_data_values),
)


@dataclass(frozen=True)
class NoShapeMatched:
    """Outcome when no known envelope contains an embedding vector."""

    raw_body: str


def extract_embedding(body: Any, raw_body: str = "") -> list[float] | NoShapeMatched:
    """
    Locate the embedding vector in a decoded response body.

    Args:
        body: Decoded JSON response (any type; non-dicts never match).
        raw_body: The undecoded response text, kept for diagnostics.

    Returns:
        The vector as a list of floats, or NoShapeMatched.
    """
    if isinstance(body, dict):
        for shape in EMBEDDING_SHAPES:
            vector = shape.match(body)
            if vector is not None:
                logger.debug("Embedding matched response shape '%s'", shape.name)
                return [float(v) for v in vector]
    return NoShapeMatched(raw_body=raw_body)


# ---------------------------------------------------------------------------
# Placeholder Vectors — Demo Mode
# ---------------------------------------------------------------------------


def placeholder_vector(size: int, seed: int = 1) -> list[float]:
    """Deterministic stand-in vector: ((i + seed) % 100) / 100 per dimension."""
    return [((i + seed) % 100) / 100 for i in range(size)]


# ---------------------------------------------------------------------------
# Embedding Client
# ---------------------------------------------------------------------------


class Embedder:
    """
    Embedding client used by the evaluation pipeline.

    Holds the demo-mode switch, dimension and truncation limit from
    Settings; the provider handles transport.
    """

    def __init__(self, settings: Settings, provider: LLMProvider) -> None:
        self._provider = provider
        self._demo_mode = settings.demo_mode
        self._dimensions = settings.embedding_dimensions
        self._max_input_chars = settings.embedding_max_input_chars

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            ProviderError: If the live provider call fails (never in demo mode).
        """
        if self._demo_mode:
            return placeholder_vector(self._dimensions, seed=len(text) or 1)

        return self._provider.embed(text[: self._max_input_chars])

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts one by one, preserving input order."""
        vectors = [self.embed(t) for t in texts]
        logger.info(
            "Generated %d embeddings (dimensions=%d, demo=%s)",
            len(vectors), self._dimensions, self._demo_mode,
        )
        return vectors
