"""Search indexing engine composed from the index mixins."""

from dynamo_denorm.search._full_text import _FullTextIndex
from dynamo_denorm.search._relevance import _RelevanceIndex
from dynamo_denorm.search._trigram import _TrigramIndex


class SearchEngine(_FullTextIndex, _RelevanceIndex, _TrigramIndex):
    """
    Maintains search indexes for documents and answers ranked queries.

    Index writes go through chunked batch writes; a failed batch is logged
    and leaves the index stale until the next write to the source document.

    Args:
        store: Document store holding sources and indexes
        deduplicator: Optional event deduplicator consulted per change
        config: Configuration settings
        metrics: Optional metrics recorder
    """
