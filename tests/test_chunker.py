"""Tests for overlapping, sentence-aware chunking."""

import pytest

from synapse_index.chunker import smart_chunk


def _prose(sentences: int) -> str:
    return "".join(
        f"Sentence number {i} describes how the indexer treats topic {i}. "
        for i in range(sentences)
    )


class TestSmartChunk:

    def test_short_content_is_single_chunk(self):
        content = "  short note with padding  "
        assert smart_chunk(content) == [content]

    def test_exact_size_is_single_chunk(self):
        content = "x" * 500
        assert smart_chunk(content) == [content]

    def test_empty_content(self):
        assert smart_chunk("") == []
        assert smart_chunk(None) == []

    def test_windows_without_sentence_breaks(self):
        content = "abcdefghij" * 120
        chunks = smart_chunk(content)

        assert [len(c) for c in chunks] == [500, 500, 300]
        assert chunks[0] == content[:500]
        assert chunks[1] == content[450:950]
        assert chunks[2] == content[900:]

    def test_consecutive_chunks_overlap(self):
        content = "abcdefghij" * 120
        chunks = smart_chunk(content, chunk_size=500, overlap=50)

        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev[-50:] == nxt[:50]

    def test_chunks_cover_content(self):
        content = "0123456789" * 230
        chunks = smart_chunk(content, chunk_size=500, overlap=50)

        rebuilt = chunks[0] + "".join(c[50:] for c in chunks[1:])
        assert rebuilt == content

    def test_extends_to_nearby_sentence_end(self):
        content = "a" * 520 + ". " + "b" * 300
        chunks = smart_chunk(content)

        assert chunks[0] == "a" * 520 + "."
        assert chunks[1] == "a" * 49 + ". " + "b" * 300

    def test_ignores_distant_sentence_end(self):
        content = "a" * 650 + ". " + "b" * 300
        chunks = smart_chunk(content)

        assert len(chunks[0]) == 500

    def test_chunk_size_bounded_by_lookahead(self):
        content = _prose(60)
        chunks = smart_chunk(content, chunk_size=500, overlap=50)

        assert len(chunks) > 1
        assert all(len(c) <= 600 for c in chunks)

    def test_prose_breaks_on_sentences(self):
        chunks = smart_chunk(_prose(60))
        assert all(c.endswith(".") for c in chunks)

    def test_custom_sizes(self):
        chunks = smart_chunk("z" * 100, chunk_size=40, overlap=10, lookahead=0)
        assert chunks == ["z" * 40, "z" * 40, "z" * 40, "z" * 10]

    def test_trailing_overlap_chunk(self):
        content = "0123456789" * 230
        chunks = smart_chunk(content)

        assert [len(c) for c in chunks] == [500, 500, 500, 500, 500, 50]
        assert chunks[-1] == content[-50:]

    def test_no_trailing_chunk_when_start_passes_end(self):
        # Third window ends at 1400, next start 1350 is past the content
        chunks = smart_chunk("abcdefghij" * 120)
        assert len(chunks) == 3

    def test_whitespace_fragments_dropped(self):
        assert smart_chunk(" " * 600) == []

    def test_overlap_must_be_smaller_than_size(self):
        with pytest.raises(ValueError):
            smart_chunk("x" * 100, chunk_size=10, overlap=10)
