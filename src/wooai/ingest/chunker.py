"""Sentence-aware content chunker.

Splits product descriptions, pages and policies into bounded segments that
are the unit of embedding and retrieval:

  - content that fits in ``max_chunk_size`` is returned as a single chunk;
  - otherwise sentences (ending in ``.``, ``!`` or ``?`` followed by
    whitespace) are accumulated greedily until the next one would overflow;
  - a sentence longer than ``max_chunk_size`` is cut at word boundaries
    (a single over-long word is hard-cut);
  - every chunk but the last is at least ``min_chunk_size`` characters. When a
    short chunk is followed by a long sentence, the sentence is split at a
    word boundary to fill the chunk.

With ``overlap`` > 0 each chunk after the first also starts with up to
``overlap`` characters of whole words from the end of its predecessor. Chunks
are packed to ``max_chunk_size - overlap`` first, so the result still fits.

Sizes are measured in characters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from wooai.errors import InvalidArgument

ABSOLUTE_MIN_CHUNK_SIZE = 100
ABSOLUTE_MAX_CHUNK_SIZE = 8_000

_SENTENCE_RE = re.compile(r"\S.*?(?:[.!?]+(?=\s|$)|$)", re.S)
_TERMINATOR_RE = re.compile(r"[.!?]+(?=\s|$)")
_WORD_RE = re.compile(r"\S+")

Span = tuple[int, int]


@dataclass
class TextChunk:
    content: str
    index: int
    start_pos: int
    end_pos: int
    word_count: int
    sentence_count: int


def validate_chunk_sizes(max_chunk_size: int, min_chunk_size: int) -> None:
    """Raise InvalidArgument unless the sizes are within the accepted range."""
    if not ABSOLUTE_MIN_CHUNK_SIZE <= max_chunk_size <= ABSOLUTE_MAX_CHUNK_SIZE:
        raise InvalidArgument(
            f"Invalid chunk size {max_chunk_size}: must be between "
            f"{ABSOLUTE_MIN_CHUNK_SIZE} and {ABSOLUTE_MAX_CHUNK_SIZE} characters"
        )
    if min_chunk_size < 0 or min_chunk_size >= max_chunk_size:
        raise InvalidArgument(
            f"Invalid minimum chunk size {min_chunk_size}: must be >= 0 and "
            f"smaller than the maximum chunk size ({max_chunk_size})"
        )


def validate_overlap(overlap: int, max_chunk_size: int) -> None:
    """Raise InvalidArgument unless 0 <= overlap <= half of *max_chunk_size*."""
    if overlap < 0 or overlap * 2 > max_chunk_size:
        raise InvalidArgument(
            f"Invalid chunk overlap {overlap}: must be between 0 and 50% of the "
            f"chunk size ({max_chunk_size // 2})"
        )


class ContentChunker:
    """Split text into ordered, bounded, sentence-respecting chunks.

    Args:
        max_chunk_size: Upper bound on chunk length in characters.
        min_chunk_size: Lower bound for every chunk except the last.
        preserve_sentences: Split at sentence boundaries (otherwise words).
        overlap: Characters of trailing context repeated from the previous chunk.
    """

    def __init__(
        self,
        max_chunk_size: int = 1_000,
        min_chunk_size: int = 100,
        preserve_sentences: bool = True,
        overlap: int = 0,
    ) -> None:
        validate_chunk_sizes(max_chunk_size, min_chunk_size)
        validate_overlap(overlap, max_chunk_size)
        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size
        self.preserve_sentences = preserve_sentences
        self.overlap = overlap

    def chunk(
        self,
        content: str,
        max_chunk_size: int | None = None,
        min_chunk_size: int | None = None,
        preserve_sentences: bool | None = None,
        overlap: int | None = None,
    ) -> list[TextChunk]:
        """Split *content*; per-call arguments override the instance defaults.

        Raises:
            InvalidArgument: If *content* is empty or the sizes are out of range.
        """
        max_size = self.max_chunk_size if max_chunk_size is None else max_chunk_size
        min_size = self.min_chunk_size if min_chunk_size is None else min_chunk_size
        preserve = self.preserve_sentences if preserve_sentences is None else preserve_sentences
        overlap = self.overlap if overlap is None else overlap

        if not content or not content.strip():
            raise InvalidArgument("Content cannot be empty")
        validate_chunk_sizes(max_size, min_size)
        validate_overlap(overlap, max_size)

        stripped = content.strip()
        if len(stripped) <= max_size:
            start = content.index(stripped)
            return [_make_chunk(stripped, 0, start, start + len(stripped))]

        budget = max_size - overlap
        if preserve:
            units: list[Span] = []
            for m in _SENTENCE_RE.finditer(content):
                start, end = m.start(), m.end()
                if end - start > budget:
                    units.extend(_word_windows(content, start, end, budget))
                else:
                    units.append((start, end))
        else:
            units = _word_windows(content, 0, len(content), budget)

        spans = _pack(content, units, budget, min(min_size, budget - 1))
        if overlap:
            spans = _with_overlap(content, spans, overlap)
        return [
            _make_chunk(content[s:e], i, s, e) for i, (s, e) in enumerate(spans)
        ]


def chunk_text(
    content: str,
    max_chunk_size: int = 1_000,
    min_chunk_size: int = 100,
    preserve_sentences: bool = True,
    overlap: int = 0,
) -> list[TextChunk]:
    """Functional shortcut for ``ContentChunker().chunk(...)``."""
    return ContentChunker(max_chunk_size, min_chunk_size, preserve_sentences, overlap).chunk(
        content
    )


def count_sentences(text: str) -> int:
    if not text.strip():
        return 0
    return max(1, len(_TERMINATOR_RE.findall(text)))


# ------------------------------------------------------------------
# Internals
# ------------------------------------------------------------------


def _make_chunk(text: str, index: int, start: int, end: int) -> TextChunk:
    return TextChunk(
        content=text,
        index=index,
        start_pos=start,
        end_pos=end,
        word_count=len(text.split()),
        sentence_count=count_sentences(text),
    )


def _word_windows(text: str, start: int, end: int, max_size: int) -> list[Span]:
    """Cut text[start:end] into word-aligned spans no longer than *max_size*."""
    spans: list[Span] = []
    cur_start: int | None = None
    cur_end = start
    for m in _WORD_RE.finditer(text, start, end):
        w_start, w_end = m.start(), m.end()
        if w_end - w_start > max_size:
            if cur_start is not None:
                spans.append((cur_start, cur_end))
                cur_start = None
            for pos in range(w_start, w_end, max_size):
                spans.append((pos, min(pos + max_size, w_end)))
            continue
        if cur_start is None:
            cur_start, cur_end = w_start, w_end
        elif w_end - cur_start > max_size:
            spans.append((cur_start, cur_end))
            cur_start, cur_end = w_start, w_end
        else:
            cur_end = w_end
    if cur_start is not None:
        spans.append((cur_start, cur_end))
    return spans


def _fill_from(text: str, unit: Span, cur_start: int, max_size: int) -> int | None:
    """Return the end of the longest word-aligned prefix of *unit* that keeps
    text[cur_start:end] within *max_size*, or None if no word fits."""
    best: int | None = None
    for m in _WORD_RE.finditer(text, unit[0], unit[1]):
        if m.end() - cur_start > max_size:
            break
        best = m.end()
    return best


def _next_word_start(text: str, pos: int, end: int) -> int | None:
    m = _WORD_RE.search(text, pos, end)
    return m.start() if m else None


def _pack(text: str, units: list[Span], max_size: int, min_size: int) -> list[Span]:
    """Greedily merge consecutive units into spans bounded by *max_size*."""
    spans: list[Span] = []
    queue = list(units)
    cur: Span | None = None
    i = 0
    while i < len(queue):
        unit = queue[i]
        if cur is None:
            cur = unit
            i += 1
            continue
        if unit[1] - cur[0] <= max_size:
            cur = (cur[0], unit[1])
            i += 1
            continue
        if cur[1] - cur[0] < min_size:
            cut = _fill_from(text, unit, cur[0], max_size)
            if cut is not None:
                spans.append((cur[0], cut))
                rest = _next_word_start(text, cut, unit[1])
                cur = None
                if rest is None:
                    i += 1
                else:
                    queue[i] = (rest, unit[1])
                continue
        spans.append(cur)
        cur = None
    if cur is not None:
        spans.append(cur)

    # fold a short tail into its predecessor when the result still fits
    if len(spans) > 1:
        last_start, last_end = spans[-1]
        prev_start, _ = spans[-2]
        if last_end - last_start < min_size and last_end - prev_start <= max_size:
            spans[-2:] = [(prev_start, last_end)]
    return spans


def _with_overlap(text: str, spans: list[Span], overlap: int) -> list[Span]:
    """Move each span start back over whole words of its predecessor, at most
    *overlap* characters."""
    result = spans[:1]
    for (prev_start, _), (start, end) in zip(spans, spans[1:]):
        new_start = start
        for m in _WORD_RE.finditer(text, prev_start, start):
            if m.start() >= start - overlap:
                new_start = m.start()
                break
        result.append((new_start, end))
    return result
