"""
Text pipeline for search indexing.

HTML is reduced to plain text, lowercased and split into tokens; tokens are
grouped into sliding-window phrases and expanded into prefixes or trigrams.
"""

from __future__ import annotations

import re
from html.parser import HTMLParser
from typing import Any, Callable, Iterable, Optional, Sequence

TokenFilter = Callable[[str], str]

_PRE_BLOCK = re.compile(r"<pre[^>]*>[\s\S]*?</pre>", re.IGNORECASE)
_NON_WORD = re.compile(r"[\W_]+")

_BLOCK_TAGS = frozenset(
    {
        "address", "article", "aside", "blockquote", "br", "dd", "div",
        "dl", "dt", "figcaption", "footer", "h1", "h2", "h3", "h4", "h5",
        "h6", "header", "hr", "li", "main", "nav", "ol", "p", "section",
        "table", "td", "th", "tr", "ul",
    }
)
_SKIPPED_TAGS = frozenset({"script", "style", "head", "title"})


class _TextExtractor(HTMLParser):
    """Collects text nodes, separating block elements with spaces."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _SKIPPED_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self.parts.append(" ")

    def handle_endtag(self, tag):
        if tag in _SKIPPED_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag in _BLOCK_TAGS:
            self.parts.append(" ")

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(data)

    def text(self) -> str:
        return "".join(self.parts)


def html_to_text(html: str) -> str:
    """Strip markup, dropping ``<pre>`` blocks and non-breaking spaces."""
    cleaned = _PRE_BLOCK.sub("", html.replace("&nbsp;", " "))
    extractor = _TextExtractor()
    extractor.feed(cleaned)
    extractor.close()
    return extractor.text().replace("\xa0", " ")


def normalize_text(text: str) -> str:
    """Lowercase and collapse every run of non letters/digits to a space."""
    return _NON_WORD.sub(" ", text.lower()).strip()


def tokenize(text: str) -> list[str]:
    return normalize_text(text).split()


def sliding_phrases(tokens: Sequence[str], n: int) -> list[str]:
    """
    Phrases of ``n`` consecutive tokens starting at every position.

    The window shrinks at the tail, so the final phrases are the trailing
    partial windows down to the last token::

        >>> sliding_phrases(["the", "quick", "brown", "fox"], 2)
        ['the quick', 'quick brown', 'brown fox', 'fox']
    """
    if n < 1:
        raise ValueError("phrase length must be at least 1")
    return [" ".join(tokens[i : i + n]) for i in range(len(tokens))]


def character_prefixes(phrase: str) -> list[str]:
    return [phrase[:i] for i in range(1, len(phrase) + 1)]


def word_prefixes(
    tokens: Sequence[str], filter_func: Optional[TokenFilter] = None
) -> list[str]:
    """Cumulative phrases of (filtered) tokens: ``a``, ``a b``, ``a b c``."""
    prefixes: list[str] = []
    words: list[str] = []
    for token in tokens:
        word = filter_func(token) if filter_func else token
        if not word:
            continue
        words.append(word)
        prefixes.append(" ".join(words))
    return prefixes


def trigrams(text: str) -> list[str]:
    """
    Distinct 3-character substrings of the normalized text, in order.

    Text shorter than three characters is its own single trigram.
    """
    normalized = normalize_text(text)
    if not normalized:
        return []
    if len(normalized) < 3:
        return [normalized]
    return list(
        dict.fromkeys(normalized[i : i + 3] for i in range(len(normalized) - 2))
    )


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value if v is not None)
    return str(value)


def create_index(value: Any, n: int) -> list[str]:
    """Phrases to index for a field value; list values are joined first."""
    text = _as_text(value)
    if not text:
        return []
    return [p for p in sliding_phrases(tokenize(html_to_text(text)), n) if p]


def term_frequencies(
    values: Iterable[Any],
    n: int,
    filter_func: Optional[TokenFilter] = None,
    frequencies: Optional[dict[str, int]] = None,
) -> dict[str, int]:
    """
    Accumulate prefix frequencies over every phrase of every value.

    Without a filter each phrase contributes its character prefixes; with a
    filter the phrase is rebuilt word by word from filtered tokens.
    """
    totals = frequencies if frequencies is not None else {}
    for value in values:
        for phrase in create_index(value, n):
            if filter_func:
                prefixes = word_prefixes(phrase.split(), filter_func)
            else:
                prefixes = character_prefixes(phrase)
            for prefix in prefixes:
                totals[prefix] = totals.get(prefix, 0) + 1
    return totals


__all__ = [
    "TokenFilter",
    "character_prefixes",
    "create_index",
    "html_to_text",
    "normalize_text",
    "sliding_phrases",
    "term_frequencies",
    "tokenize",
    "trigrams",
    "word_prefixes",
]
