"""Term-frequency relevance index and ranked search."""

# pylint: disable=broad-exception-caught

from __future__ import annotations

import logging
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
from dynamo_denorm.search.text import TokenFilter, term_frequencies, tokenize

logger = logging.getLogger(__name__)

MERGED_INDEX = "_merged"
TERM_FIELD = "_term"


class _RelevanceIndex(BaseEngine):
    """
    Maintains ``_term`` frequency maps for ranked prefix search.

    Merged indexes live at ``{search}/{collection}/_merged/{docId}``;
    per-field indexes at ``{search}/{collection}/{field}/{docId}``.
    """

    def relevant_index(
        self,
        change: DocumentChange,
        fields: Sequence[str],
        merged: bool = True,
        filter_func: Optional[TokenFilter] = None,
        chunk_word_count: int = 6,
        search_collection: Optional[str] = None,
    ) -> str:
        """
        Rebuild the relevance index of the changed document.

        Returns:
            "indexed", "deleted", "skipped" or "duplicate"
        """
        if self._is_duplicate(change):
            return "duplicate"
        if not is_create(change) and not any_changed(change, fields):
            return "skipped"

        base = join_path(
            search_collection or self.config.search_collection,
            change.collection_id,
        )
        if is_delete(change):
            paths = self._relevance_paths(base, change.doc_id, fields, merged)
            logger.info("Deleting relevance index for %s", change.path)
            self._write_batch([WriteOp.delete(p) for p in paths])
            return "deleted"

        self._write_batch(
            self._relevance_ops(
                base,
                change.doc_id,
                change.after or {},
                fields,
                merged,
                filter_func,
                chunk_word_count,
            )
        )
        return "indexed"

    def init_relevant_index(
        self,
        collection: str,
        fields: Sequence[str],
        merged: bool = True,
        filter_func: Optional[TokenFilter] = None,
        chunk_word_count: int = 6,
        search_collection: Optional[str] = None,
    ) -> int:
        """
        Build relevance indexes for every existing document of a collection.

        Returns:
            Number of source documents indexed
        """
        base = join_path(
            search_collection or self.config.search_collection,
            collection.rstrip("/").split("/")[-1],
        )
        snapshots = self.store.query(Query(collection))
        operations = []
        for snapshot in snapshots:
            operations.extend(
                self._relevance_ops(
                    base,
                    snapshot.id,
                    snapshot.data,
                    fields,
                    merged,
                    filter_func,
                    chunk_word_count,
                )
            )
        logger.info(
            "Initializing relevance index",
            extra={"collection": collection, "documents": len(snapshots)},
        )
        self._write_batch(operations)
        return len(snapshots)

    def relevant_search(
        self,
        query: str,
        collection: str,
        fields: Optional[Sequence[str]] = None,
        limit: int = 10,
        start_id: Optional[str] = None,
        filter_func: Optional[TokenFilter] = None,
        search_collection: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Rank documents by the frequency of ``query`` in their index.

        Without ``fields`` the merged index is searched and ``start_id``
        pages through it. With ``fields`` each field index is searched and
        relevance is summed per document.

        Raises:
            ValueError: If ``start_id`` is combined with ``fields``
        """
        if fields is not None and start_id is not None:
            raise ValueError("start_id is only supported on the merged index")

        tokens = tokenize(query)
        if filter_func:
            tokens = [w for w in (filter_func(t) for t in tokens) if w]
        term = " ".join(tokens)
        if not term:
            return []

        base = join_path(
            search_collection or self.config.search_collection, collection
        )
        if fields is None:
            return self._ranked(join_path(base, MERGED_INDEX), term, limit, start_id)

        batches = [
            self._ranked(join_path(base, field), term, limit) for field in fields
        ]
        return merge_results(batches)[:limit]

    def _ranked(
        self,
        index_collection: str,
        term: str,
        limit: int,
        start_id: Optional[str] = None,
    ) -> list[SearchResult]:
        field_path = (TERM_FIELD, term)
        query = (
            Query(index_collection)
            .where(field_path, "exists")
            .order(field_path, descending=True)
            .after(start_id)
            .take(limit)
        )
        return [
            SearchResult(id=s.id, relevance=int(s.get(field_path)))
            for s in self.store.query(query)
        ]

    @staticmethod
    def _relevance_paths(
        base: str, doc_id: str, fields: Sequence[str], merged: bool
    ) -> list[str]:
        if merged:
            return [join_path(base, MERGED_INDEX, doc_id)]
        return [join_path(base, field, doc_id) for field in fields]

    @staticmethod
    def _relevance_ops(
        base: str,
        doc_id: str,
        data: Document,
        fields: Sequence[str],
        merged: bool,
        filter_func: Optional[TokenFilter],
        chunk_word_count: int,
    ) -> list[WriteOp]:
        if merged:
            groups = [(MERGED_INDEX, list(fields))]
        else:
            groups = [(field, [field]) for field in fields]

        operations = []
        for index_name, group in groups:
            path = join_path(base, index_name, doc_id)
            frequencies = term_frequencies(
                (get_path(data, f) for f in group),
                chunk_word_count,
                filter_func,
            )
            if frequencies:
                operations.append(WriteOp.put(path, {TERM_FIELD: frequencies}))
            else:
                operations.append(WriteOp.delete(path))
        return operations
