"""Tests for sentence-based chunking."""
import pytest

from knowhub.errors import ValidationError
from knowhub.rag.chunker import TextChunker, chunk_text


@pytest.fixture
def long_text():
    return " ".join(f"Sentence number {i} talks about topic {i}." for i in range(40))


class TestTextChunker:
    """Tests for TextChunker."""

    def test_empty_text_yields_no_chunks(self):
        chunker = TextChunker(chunk_size=100, chunk_overlap=20)
        assert chunker.chunk_text("") == []
        assert chunker.chunk_text("   \n\t ") == []

    def test_short_text_is_one_chunk(self):
        chunks = chunk_text("The sky is blue. Grass is green.", 1000, 200)
        assert chunks == ["The sky is blue. Grass is green."]

    def test_new_content_reconstructs_text(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=30).chunk_text(long_text)

        assert len(chunks) > 1
        assert "".join(c.new_content for c in chunks) == long_text

    def test_indices_are_sequential(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=30).chunk_text(long_text)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_next_chunk_starts_with_overlap_words(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=30).chunk_text(long_text)

        for previous, current in zip(chunks, chunks[1:]):
            seed = " ".join(previous.content.split()[-3:]) + " "
            assert current.content.startswith(seed)
            assert current.overlap_chars == len(seed)

    def test_zero_overlap_has_no_seed(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=0).chunk_text(long_text)

        assert all(c.overlap_chars == 0 for c in chunks)
        assert "".join(c.content for c in chunks) == long_text

    def test_sentence_is_never_split(self):
        sentence = "x" * 500
        chunks = TextChunker(chunk_size=100, chunk_overlap=10).chunk_text(sentence)

        assert len(chunks) == 1
        assert chunks[0].content == sentence

    def test_chunks_respect_size_when_sentences_fit(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=30).chunk_text(long_text)
        assert all(len(c.content) <= 120 for c in chunks)

    def test_chunking_is_deterministic(self, long_text):
        chunker = TextChunker(chunk_size=150, chunk_overlap=40)
        assert chunker.chunk_text(long_text) == chunker.chunk_text(long_text)

    def test_no_chunk_is_only_overlap(self, long_text):
        chunks = TextChunker(chunk_size=120, chunk_overlap=30).chunk_text(long_text)
        assert all(c.new_content for c in chunks)

    def test_stats(self, long_text):
        chunker = TextChunker(chunk_size=120, chunk_overlap=30)
        chunks = chunker.chunk_text(long_text)
        stats = chunker.get_chunk_stats(chunks)

        assert stats["chunk_count"] == len(chunks)
        assert stats["max_chunk_size"] <= 120
        assert chunker.get_chunk_stats([])["chunk_count"] == 0


class TestChunkParameters:
    """Tests for size validation."""

    @pytest.mark.parametrize(
        "size,overlap",
        [(0, 0), (-5, 0), (100, -1), (100, 100), (100, 150)],
    )
    def test_invalid_parameters_rejected(self, size, overlap):
        with pytest.raises(ValidationError):
            TextChunker(chunk_size=size, chunk_overlap=overlap)

    def test_function_validates_too(self):
        with pytest.raises(ValidationError):
            chunk_text("Some text.", 10, 10)
