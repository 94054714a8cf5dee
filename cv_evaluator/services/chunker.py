# =============================================================================
# Character-Based Text Chunker
# =============================================================================
#
# Splits extracted CV / project text into overlapping fixed-size windows for
# embedding and retrieval.
#
# ALGORITHM:
#   1. Slide a window of `size` characters over the text
#   2. Advance by `size - overlap` per step until the text is exhausted
#   3. Drop empty windows
#
# Consecutive chunks share `overlap` characters, so a sentence cut at a
# boundary still appears whole in one of the two neighbours. The chunk
# boundaries always cover every character of the input.
#
# Each chunk carries two identities:
#   - chunk_id: human-readable "<category>_<ordinal>_<uuid>", stored in the
#     index payload for tracing
#   - point_id: a plain UUID, the only id format Qdrant accepts for points
# =============================================================================

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Prefix used in chunk ids per document category
_CATEGORY_PREFIXES = {
    "cv": "cv",
    "project": "proj",
}


@dataclass
class TextChunk:
    """A single chunk ready for embedding and indexing."""

    chunk_id: str  # Human-readable id, e.g. "cv_0_8f14e45f-..."
    point_id: str  # Vector index point id (UUID string)
    text: str
    chunk_index: int  # 0-indexed position within the document


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def chunk_text(text: str, size: int = 1200, overlap: int = 200) -> list[str]:
    """
    Split text into overlapping windows of at most `size` characters.

    Args:
        text: The raw text to split.
        size: Window size in characters.
        overlap: Characters shared by consecutive windows.

    Returns:
        Non-empty text slices in document order. Empty input gives [].

    Raises:
        ValueError: If size is not positive, overlap is negative, or
            overlap >= size (the window would never advance).
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    if overlap < 0:
        raise ValueError(f"chunk overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ValueError(
            f"chunk overlap ({overlap}) must be smaller than chunk size ({size})"
        )

    if not text:
        return []

    step = size - overlap
    chunks: list[str] = []
    for start in range(0, len(text), step):
        window = text[start:start + size]
        if window:
            chunks.append(window)
        if start + size >= len(text):
            break

    return chunks


def build_chunks(
    text: str,
    category: str,
    size: int = 1200,
    overlap: int = 200,
) -> list[TextChunk]:
    """
    Chunk a document's text and assign chunk/point identities.

    Args:
        text: Extracted document text.
        category: Document category, "cv" or "project".
        size: Window size in characters.
        overlap: Overlap between consecutive windows.

    Returns:
        List of TextChunk in document order.
    """
    prefix = _CATEGORY_PREFIXES.get(category, category)
    slices = chunk_text(text, size=size, overlap=overlap)

    chunks = [
        TextChunk(
            chunk_id=f"{prefix}_{i}_{uuid.uuid4()}",
            point_id=str(uuid.uuid4()),
            text=piece,
            chunk_index=i,
        )
        for i, piece in enumerate(slices)
    ]

    logger.info(
        "Chunked %s text (%d chars) into %d chunks (size=%d, overlap=%d)",
        category, len(text), len(chunks), size, overlap,
    )
    return chunks
