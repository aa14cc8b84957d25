"""Trigram index and approximate search."""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Optional, Sequence

from dynamo_denorm.base_engine import BaseEngine
from dynamo_denorm.change_detection import any_changed, is_create, is_delete
from dynamo_denorm.models import (
    Document,
    DocumentChange,
    Query,
    SearchResult,
    WriteOp,
    get_path,
    join_path,
    merge_results,
)
from dynamo_denorm.search.text import trigrams

logger = logging.getLogger(__name__)

MERGED_INDEX = "_merged"
TERM_FIELD = "_term"

FULL_MATCH_WEIGHT = 3
ONE_MISSING_WEIGHT = 2
TWO_MISSING_WEIGHT = 1


def searchable_subsets(grams: Sequence[str]) -> list[tuple[tuple[str, ...], int]]:
    """
    Trigram subsets to query, paired with their weight.

    The full set weighs 3, every subset with one trigram removed weighs 2
    and every subset with two removed weighs 1. Empty subsets are dropped.
    """
    subsets: list[tuple[tuple[str, ...], int]] = []
    seen: set[tuple[str, ...]] = set()
    for removed, weight in (
        (0, FULL_MATCH_WEIGHT),
        (1, ONE_MISSING_WEIGHT),
        (2, TWO_MISSING_WEIGHT),
    ):
        size = len(grams) - removed
        if size < 1:
            break
        for subset in combinations(grams, size):
            if subset not in seen:
                seen.add(subset)
                subsets.append((subset, weight))
    return subsets


class _TrigramIndex(BaseEngine):
    """Maintains ``{trigrams}/{collection}/{field|_merged}/{docId}`` maps."""

    def trigram_index(
        self,
        change: DocumentChange,
        fields: Sequence[str],
        merged: bool = True,
        trigram_collection: Optional[str] = None,
    ) -> str:
        """
        Rebuild the trigram index of the changed document.

        Returns:
            "indexed", "deleted", "skipped" or "duplicate"
        """
        if self._is_duplicate(change):
            return "duplicate"
        if not is_create(change) and not any_changed(change, fields):
            return "skipped"

        base = join_path(
            trigram_collection or self.config.trigrams_collection,
            change.collection_id,
        )
        if is_delete(change):
            names = [MERGED_INDEX] if merged else list(fields)
            logger.info("Deleting trigram index for %s", change.path)
            self._write_batch(
                [WriteOp.delete(join_path(base, n, change.doc_id)) for n in names]
            )
            return "deleted"

        self._write_batch(
            self._trigram_ops(base, change.doc_id, change.after or {}, fields, merged)
        )
        return "indexed"

    def init_trigram_index(
        self,
        collection: str,
        fields: Sequence[str],
        merged: bool = True,
        trigram_collection: Optional[str] = None,
    ) -> int:
        """Index every existing document of a collection; returns the count."""
        base = join_path(
            trigram_collection or self.config.trigrams_collection,
            collection.rstrip("/").split("/")[-1],
        )
        snapshots = self.store.query(Query(collection))
        operations = []
        for snapshot in snapshots:
            operations.extend(
                self._trigram_ops(base, snapshot.id, snapshot.data, fields, merged)
            )
        logger.info(
            "Initializing trigram index",
            extra={"collection": collection, "documents": len(snapshots)},
        )
        self._write_batch(operations)
        return len(snapshots)

    def trigram_search(
        self,
        query: str,
        collection: str,
        fields: Optional[Sequence[str]] = None,
        limit: int = 10,
        trigram_collection: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Approximate search by trigram overlap.

        Every searchable subset of the query's trigrams is matched with an
        AND of presence filters; a document's score is the sum of the
        weights of all subsets it matches.
        """
        grams = trigrams(query)
        if not grams:
            return []

        base = join_path(
            trigram_collection or self.config.trigrams_collection, collection
        )
        names = [MERGED_INDEX] if fields is None else list(fields)
        batches = []
        for name in names:
            for subset, weight in searchable_subsets(grams):
                request = Query(join_path(base, name))
                for gram in subset:
                    request = request.where((TERM_FIELD, gram), "==", True)
                batches.append(
                    [
                        SearchResult(id=s.id, relevance=weight)
                        for s in self.store.query(request.take(limit))
                    ]
                )
        return merge_results(batches)[:limit]

    @staticmethod
    def _trigram_ops(
        base: str,
        doc_id: str,
        data: Document,
        fields: Sequence[str],
        merged: bool,
    ) -> list[WriteOp]:
        groups = [(MERGED_INDEX, list(fields))] if merged else [(f, [f]) for f in fields]
        operations = []
        for index_name, group in groups:
            terms: dict[str, bool] = {}
            for field in group:
                value = get_path(data, field)
                if value is None:
                    continue
                text = " ".join(map(str, value)) if isinstance(value, list) else str(value)
                terms.update((gram, True) for gram in trigrams(text))
            path = join_path(base, index_name, doc_id)
            if terms:
                operations.append(WriteOp.put(path, {TERM_FIELD: terms}))
            else:
                operations.append(WriteOp.delete(path))
        return operations
