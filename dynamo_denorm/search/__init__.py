"""Full-text, relevance and trigram search indexing."""

from dynamo_denorm.search._trigram import searchable_subsets
from dynamo_denorm.search.engine import SearchEngine
from dynamo_denorm.search.text import (
    character_prefixes,
    create_index,
    html_to_text,
    normalize_text,
    sliding_phrases,
    term_frequencies,
    tokenize,
    trigrams,
    word_prefixes,
)

__all__ = [
    "SearchEngine",
    "character_prefixes",
    "create_index",
    "html_to_text",
    "normalize_text",
    "searchable_subsets",
    "sliding_phrases",
    "term_frequencies",
    "tokenize",
    "trigrams",
    "word_prefixes",
]
