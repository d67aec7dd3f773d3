"""Tests for word-based chunking."""
import math

import pytest

from ascleon.rag.chunker import TextChunker, chunk_words
from tests.conftest import numbered_words


@pytest.mark.parametrize("word_count,chunk_size", [(1, 800), (799, 800), (800, 800), (2400, 800), (2401, 800), (10, 3)])
def test_chunk_count_is_ceiling(word_count, chunk_size):
    chunks = chunk_words(numbered_words(word_count), chunk_size)
    assert len(chunks) == math.ceil(word_count / chunk_size)


def test_chunks_reproduce_word_sequence():
    text = "Dengue  fever\nspreads\tthrough   mosquito bites " * 50
    chunks = chunk_words(text, 7)

    rejoined = [word for chunk in chunks for word in chunk.split()]
    assert rejoined == text.split()


def test_chunks_are_single_space_joined_and_last_may_be_short():
    chunks = chunk_words("a  b\nc d\te", 2)
    assert chunks == ["a b", "c d", "e"]


def test_empty_and_whitespace_text_yield_no_chunks():
    assert chunk_words("", 800) == []
    assert chunk_words("   \n\t ", 800) == []


def test_invalid_chunk_size_rejected():
    with pytest.raises(ValueError):
        chunk_words("some text", -1)
    with pytest.raises(ValueError):
        chunk_words("some text", 0)
    with pytest.raises(ValueError):
        TextChunker(chunk_size=0)
    with pytest.raises(ValueError):
        TextChunker(chunk_size=-5)


def test_chunker_indices_are_contiguous():
    chunker = TextChunker(chunk_size=800)
    chunks = chunker.chunk_text(numbered_words(2400))

    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert all(c.word_count == 800 for c in chunks)
    assert chunks[1].content.split()[0] == "word800"


def test_chunk_stats():
    chunker = TextChunker(chunk_size=4)
    stats = chunker.get_chunk_stats(chunker.chunk_text(numbered_words(10)))

    assert stats == {
        "chunk_count": 3,
        "total_words": 10,
        "min_chunk_words": 2,
        "max_chunk_words": 4,
    }
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
