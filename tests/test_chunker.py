# =============================================================================
# Unit Tests — Chunker Service
# =============================================================================
#
# Tests the character-window chunking logic without external dependencies.
# No API keys, databases, or network calls needed.
# =============================================================================

import uuid

import pytest

from cv_evaluator.services.chunker import build_chunks, chunk_text


def _reassemble(chunks: list[str], overlap: int) -> str:
    """Rebuild the source text by dropping each chunk's overlapping prefix."""
    if not chunks:
        return ""
    return chunks[0] + "".join(c[overlap:] for c in chunks[1:])


class TestChunkText:
    """Tests for chunk_text()."""

    def test_empty_text_returns_no_chunks(self):
        assert chunk_text("", size=10, overlap=2) == []

    def test_short_text_is_a_single_chunk(self):
        assert chunk_text("hello", size=10, overlap=2) == ["hello"]

    def test_text_of_exactly_one_window(self):
        assert chunk_text("a" * 10, size=10, overlap=2) == ["a" * 10]

    def test_windows_advance_by_size_minus_overlap(self):
        chunks = chunk_text("abcdefghijklmnop", size=6, overlap=2)
        assert chunks == ["abcdef", "efghij", "ijklmn", "mnop"]

    @pytest.mark.parametrize("length", [1, 99, 1200, 1201, 2500, 7777])
    def test_chunks_cover_the_whole_text(self, length):
        text = "".join(chr(ord("a") + i % 26) for i in range(length))
        chunks = chunk_text(text, size=1200, overlap=200)
        assert _reassemble(chunks, 200) == text

    def test_no_chunk_is_empty_or_oversized(self):
        chunks = chunk_text("word " * 1000, size=120, overlap=20)
        assert chunks
        assert all(0 < len(c) <= 120 for c in chunks)

    def test_zero_overlap_partitions_text(self):
        text = "x" * 25
        chunks = chunk_text(text, size=10, overlap=0)
        assert chunks == ["x" * 10, "x" * 10, "x" * 5]

    def test_deterministic(self):
        text = "Backend engineer, Python and Go. " * 80
        assert chunk_text(text, 300, 50) == chunk_text(text, 300, 50)

    @pytest.mark.parametrize(
        "size, overlap",
        [(0, 0), (-5, 0), (10, -1), (10, 10), (10, 15)],
    )
    def test_invalid_window_rejected(self, size, overlap):
        with pytest.raises(ValueError):
            chunk_text("some text", size=size, overlap=overlap)


class TestBuildChunks:
    """Tests for build_chunks() id assignment."""

    def test_cv_chunk_ids_carry_prefix_and_ordinal(self):
        chunks = build_chunks("a" * 2500, "cv", size=1200, overlap=200)
        assert len(chunks) == 3
        for i, chunk in enumerate(chunks):
            assert chunk.chunk_id.startswith(f"cv_{i}_")
            assert chunk.chunk_index == i

    def test_project_chunks_use_proj_prefix(self):
        chunks = build_chunks("report text", "project")
        assert chunks[0].chunk_id.startswith("proj_0_")

    def test_point_ids_are_plain_uuids(self):
        chunks = build_chunks("b" * 3000, "cv", size=1000, overlap=100)
        for chunk in chunks:
            assert str(uuid.UUID(chunk.point_id)) == chunk.point_id

    def test_ids_are_unique(self):
        chunks = build_chunks("c" * 5000, "cv", size=500, overlap=100)
        assert len({c.chunk_id for c in chunks}) == len(chunks)
        assert len({c.point_id for c in chunks}) == len(chunks)

    def test_empty_text_gives_no_chunks(self):
        assert build_chunks("", "cv") == []
