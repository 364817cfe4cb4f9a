"""Tests for sentence-aware chunking."""
import pytest

from docqa.rag.chunker import TextChunker, chunk_text

LONG_TEXT = " ".join(
    f"Sentence number {i} talks about topic {i % 7} in some detail." for i in range(120)
)


def test_short_text_is_a_single_chunk():
    text = "First sentence here. Second one follows! Is this the third?"
    chunks = chunk_text(text, chunk_size=1000, chunk_overlap=100)
    assert chunks == [text]


def test_whitespace_is_normalized():
    chunks = TextChunker(chunk_size=1000, chunk_overlap=100).split("Line one.\n\n  Line\ttwo.")
    assert chunks == ["Line one. Line two."]


def test_empty_text_yields_no_chunks():
    chunker = TextChunker(chunk_size=100, chunk_overlap=10)
    assert chunker.split("") == []
    assert chunker.split("   \n\t ") == []


def test_overflow_seeds_next_chunk_with_trailing_words():
    text = "One two three four five. Six seven eight nine ten. Eleven twelve thirteen."
    chunks = TextChunker(chunk_size=50, chunk_overlap=20).split(text)
    assert chunks == [
        "One two three four five. Six seven eight nine ten.",
        "nine ten. Eleven twelve thirteen.",
    ]


def test_zero_overlap_starts_fresh():
    chunks = TextChunker(chunk_size=30, chunk_overlap=0).split(
        "Alpha beta gamma. Delta epsilon zeta."
    )
    assert chunks == ["Alpha beta gamma.", "Delta epsilon zeta."]


def test_long_sentence_is_cut_into_overlapping_windows():
    chunks = TextChunker(chunk_size=10, chunk_overlap=2).split("abcdefghijklmnopqrstuvwxyz")
    assert chunks == ["abcdefghij", "ijklmnopqr", "qrstuvwxyz"]


def test_long_sentence_after_buffer_closes_buffer_first():
    text = "Short one. " + "x" * 25
    chunks = TextChunker(chunk_size=20, chunk_overlap=5).split(text)
    assert chunks[0] == "Short one."
    assert chunks[1] == "x" * 20
    assert all(len(chunk) <= 20 for chunk in chunks)


def test_chunks_are_bounded_and_non_empty():
    size, overlap = 200, 50
    chunks = TextChunker(chunk_size=size, chunk_overlap=overlap).split(LONG_TEXT)
    longest_sentence = max(len(s) for s in TextChunker(size, overlap).split_sentences(LONG_TEXT))

    assert len(chunks) > 1
    assert all(chunk.strip() for chunk in chunks)
    for chunk in chunks[:-1]:
        assert len(chunk) <= size + overlap + longest_sentence


def test_chunking_is_deterministic():
    chunker = TextChunker(chunk_size=150, chunk_overlap=30)
    assert chunker.split(LONG_TEXT) == chunker.split(LONG_TEXT)
    assert chunk_text(LONG_TEXT, 150, 30) == chunk_text(LONG_TEXT, 150, 30)


def test_chunk_text_assigns_contiguous_indices():
    chunks = TextChunker(chunk_size=150, chunk_overlap=30).chunk_text(LONG_TEXT)
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))


@pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_invalid_parameters_rejected(size, overlap):
    with pytest.raises(ValueError):
        TextChunker(chunk_size=size, chunk_overlap=overlap)


def test_chunk_stats():
    chunker = TextChunker(chunk_size=150, chunk_overlap=30)
    stats = chunker.get_chunk_stats(chunker.chunk_text(LONG_TEXT))
    assert stats["chunk_count"] > 1
    assert stats["max_chunk_size"] >= stats["avg_chunk_size"] >= stats["min_chunk_size"]
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
