"""Text clean-up applied to storefront content before chunking."""

from __future__ import annotations

import html
import re

_TAG_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>|<[^>]+>", re.I | re.S)
_REPEATED_PUNCT_RE = re.compile(r"([!?.,;:])\1{2,}")
_WHITESPACE_RE = re.compile(r"\s+")

# (pattern, replacement) pairs that spell out terse shopper vocabulary
_KEYWORD_EXPANSIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?<!product )\bprice\b", re.I), "product price"),
    (re.compile(r"\bshipping\b(?! and delivery)", re.I), "shipping and delivery"),
]


def optimize_for_ai(content: str, enhance_keywords: bool = False) -> str:
    """Normalise *content* for embedding and prompting.

    Strips markup, decodes HTML entities, collapses runs of three or more
    identical punctuation marks (``!!!`` -> ``!``; ``...`` is kept as a
    single ``.``) and squeezes whitespace. With *enhance_keywords*, a few
    commerce terms are expanded so they match more shopper phrasings.
    """
    text = _TAG_RE.sub(" ", content)
    text = html.unescape(text)
    text = _REPEATED_PUNCT_RE.sub(r"\1", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if enhance_keywords:
        for pattern, replacement in _KEYWORD_EXPANSIONS:
            text = pattern.sub(replacement, text)
    return text
