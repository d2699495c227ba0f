"""Tests for the sentence-aware content chunker."""

from __future__ import annotations

import pytest

from wooai.errors import InvalidArgument
from wooai.ingest.chunker import (
    ContentChunker,
    chunk_text,
    count_sentences,
    validate_chunk_sizes,
    validate_overlap,
)


def _sentences(n: int) -> str:
    # each sentence is 42 characters
    return " ".join(f"This is sentence {i:02d} about our hiking gear." for i in range(n))


def _assert_positions(text, chunks):
    for chunk in chunks:
        assert text[chunk.start_pos : chunk.end_pos] == chunk.content


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("content", ["", "   \n\t "])
def test_empty_content_raises(content):
    with pytest.raises(InvalidArgument, match="Content cannot be empty"):
        ContentChunker().chunk(content)


@pytest.mark.parametrize("max_size", [50, 99, 8_001])
def test_max_size_out_of_range_raises(max_size):
    with pytest.raises(InvalidArgument, match="Invalid chunk size"):
        validate_chunk_sizes(max_size, 10)


def test_min_not_below_max_raises():
    with pytest.raises(InvalidArgument, match="minimum chunk size"):
        ContentChunker(200, 200)


def test_per_call_sizes_are_validated():
    with pytest.raises(InvalidArgument):
        ContentChunker().chunk("some text", max_chunk_size=10)


# ------------------------------------------------------------------
# Single chunk
# ------------------------------------------------------------------


def test_short_content_is_one_stripped_chunk():
    chunks = ContentChunker().chunk("  Free shipping over $50.  ")

    assert len(chunks) == 1
    only = chunks[0]
    assert only.content == "Free shipping over $50."
    assert only.index == 0
    assert (only.start_pos, only.end_pos) == (2, 25)
    assert only.word_count == 4
    assert only.sentence_count == 1


# ------------------------------------------------------------------
# Sentence packing
# ------------------------------------------------------------------


def test_sentences_are_packed_greedily():
    text = _sentences(20)

    chunks = ContentChunker(200, 50).chunk(text)

    # four 42-char sentences plus separators = 171 chars; a fifth would overflow
    assert [len(c.content) for c in chunks] == [171] * 5
    assert all(c.content.endswith("gear.") for c in chunks)
    assert [c.index for c in chunks] == list(range(5))
    assert all(c.sentence_count == 4 for c in chunks)
    _assert_positions(text, chunks)


def test_chunks_preserve_every_word_in_order():
    text = _sentences(13) + " Final words without a terminator"

    chunks = ContentChunker(150, 40).chunk(text)

    assert " ".join(c.content for c in chunks).split() == text.split()
    assert all(len(c.content) <= 150 for c in chunks)
    assert all(len(c.content) >= 40 for c in chunks[:-1])


def test_overlong_sentence_split_at_word_boundaries():
    text = " ".join(["waterproof"] * 60)

    chunks = ContentChunker(100, 20).chunk(text)

    assert len(chunks) > 1
    assert all(len(c.content) <= 100 for c in chunks)
    assert all(set(c.content.split()) == {"waterproof"} for c in chunks)
    _assert_positions(text, chunks)


def test_single_overlong_word_is_hard_cut():
    chunks = ContentChunker(100, 10).chunk("x" * 250)

    assert [len(c.content) for c in chunks] == [100, 100, 50]


def test_short_chunk_filled_from_following_long_sentence():
    text = "Short one. " + " ".join(["alpha"] * 40) + "."

    chunks = ContentChunker(200, 100).chunk(text)

    assert len(chunks) == 2
    assert chunks[0].content.startswith("Short one. alpha")
    assert 100 <= len(chunks[0].content) <= 200
    assert chunks[1].content.endswith("alpha.")
    _assert_positions(text, chunks)


def test_content_within_max_is_never_split():
    text = _sentences(4) + " Ok."

    chunks = ContentChunker(180, 20).chunk(text)

    assert len(chunks) == 1
    assert chunks[0].content.endswith("Ok.")


def test_short_last_chunk_kept_when_it_cannot_fit():
    text = _sentences(4) + " Ok."

    chunks = ContentChunker(172, 20).chunk(text)

    assert [len(c.content) for c in chunks] == [171, 3]


def test_word_mode_ignores_sentences():
    text = _sentences(6)

    chunks = ContentChunker(100, 10, preserve_sentences=False).chunk(text)

    assert all(len(c.content) <= 100 for c in chunks)
    assert any(not c.content.endswith(".") for c in chunks)
    assert " ".join(c.content for c in chunks).split() == text.split()


def test_chunk_text_shortcut():
    chunks = chunk_text(_sentences(10), max_chunk_size=200, min_chunk_size=50)

    assert len(chunks) == 3


def test_large_document_stays_within_bounds():
    text = " ".join(
        f"Trail boot review {i} mentions grip and comfort." for i in range(1_000)
    )[:40_000]

    chunks = ContentChunker(1_000, 100).chunk(text, max_chunk_size=800)

    assert len(text) == 40_000
    assert len(chunks) > 10
    assert all(len(c.content) <= 1_000 for c in chunks)
    assert all(len(c.content) >= 100 for c in chunks[:-1])
    _assert_positions(text, chunks)


# ------------------------------------------------------------------
# Overlap
# ------------------------------------------------------------------


@pytest.mark.parametrize("overlap", [-1, 101])
def test_overlap_out_of_range_raises(overlap):
    with pytest.raises(InvalidArgument, match="overlap"):
        validate_overlap(overlap, 200)


def test_overlap_at_half_the_chunk_size_is_accepted():
    validate_overlap(100, 200)
    assert ContentChunker(200, 50, overlap=100).overlap == 100


def test_overlap_repeats_whole_words_of_previous_chunk():
    text = _sentences(20)

    chunks = ContentChunker(200, 50, overlap=60).chunk(text)

    assert len(chunks) > 1
    assert chunks[0].start_pos == 0
    assert all(len(c.content) <= 200 for c in chunks)
    for prev, nxt in zip(chunks, chunks[1:]):
        shared = prev.end_pos - nxt.start_pos
        assert 0 < shared <= 60
        assert text[nxt.start_pos - 1] == " "
        assert prev.content.endswith(text[nxt.start_pos : prev.end_pos])
    _assert_positions(text, chunks)


def test_overlap_keeps_every_word():
    text = _sentences(20)

    chunks = ContentChunker(200, 50, overlap=60).chunk(text)

    covered = []
    for prev_end, chunk in zip([0] + [c.end_pos for c in chunks], chunks):
        covered.append(text[max(prev_end, chunk.start_pos) : chunk.end_pos])
    assert " ".join(covered).split() == text.split()


def test_overlap_per_call_override():
    text = _sentences(20)

    plain = ContentChunker(200, 50).chunk(text)
    overlapped = ContentChunker(200, 50).chunk(text, overlap=60)

    assert [c.start_pos for c in plain][1:] != [c.start_pos for c in overlapped][1:]
    assert all(len(c.content) <= 200 for c in overlapped)


def test_overlap_ignored_for_single_chunk():
    chunks = ContentChunker(200, 50, overlap=80).chunk("Free shipping over $50.")

    assert [c.content for c in chunks] == ["Free shipping over $50."]


def test_chunk_text_accepts_overlap():
    chunks = chunk_text(_sentences(10), max_chunk_size=200, min_chunk_size=50, overlap=50)

    assert len(chunks) > 1
    assert chunks[1].start_pos < chunks[0].end_pos


# ------------------------------------------------------------------
# count_sentences
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "text,expected",
    [("", 0), ("No terminator", 1), ("One. Two! Three?", 3), ("Wait... what?!", 2)],
)
def test_count_sentences(text, expected):
    assert count_sentences(text) == expected
