"""
Integration tests for counters, category counters and tag counters against
moto DynamoDB.

Each test writes the source documents first, the way a stream delivers a
change only after the write landed, then hands the change to the engine.
"""

import pytest

from dynamo_denorm.categories import CategoryCounter
from dynamo_denorm.counters import CounterEngine
from dynamo_denorm.events import EventDeduplicator, RecentEventCache
from dynamo_denorm.models import Query
from dynamo_denorm.tags import TagCounter

pytestmark = pytest.mark.integration


@pytest.fixture
def counters(store, deduplicator, test_config, mock_metrics):
    return CounterEngine(
        store, deduplicator=deduplicator, config=test_config, metrics=mock_metrics
    )


class TestCollectionCounter:
    """The collection counter matches the number of documents."""

    def test_count_tracks_creates_and_deletes(self, store, counters, make_change):
        store.set("posts/a", {"title": "a"})
        store.set("posts/b", {"title": "b"})

        status = counters.update_collection_counter(
            make_change("posts/b", None, {"title": "b"}, event_id="e1")
        )
        assert status == "recounted"
        assert store.get("_counters/posts").get("count") == 2

        store.set("posts/c", {"title": "c"})
        status = counters.update_collection_counter(
            make_change("posts/c", None, {"title": "c"}, event_id="e2")
        )
        assert status == "incremented"
        assert store.get("_counters/posts").get("count") == 3

        store.delete("posts/a")
        counters.update_collection_counter(
            make_change("posts/a", {"title": "a"}, None, event_id="e3")
        )
        assert store.get("_counters/posts").get("count") == store.count(Query("posts"))

    def test_redelivered_event_counts_once(self, store, counters, test_config, make_change):
        store.set("posts/a", {"title": "a"})
        store.set("_counters/posts", {"count": 0})
        change = make_change("posts/a", None, {"title": "a"}, event_id="e1")

        counters.update_collection_counter(change)
        retry = CounterEngine(
            store,
            deduplicator=EventDeduplicator(
                store, config=test_config, cache=RecentEventCache(4)
            ),
            config=test_config,
        )

        assert retry.update_collection_counter(change) == "duplicate"
        assert store.get("_counters/posts").get("count") == 1

    def test_sub_collection_counter(self, store, counters, make_change):
        store.set("posts/p1/comments/c1", {"body": "x"})

        counters.update_collection_counter(
            make_change("posts/p1/comments/c1", None, {"body": "x"})
        )

        assert store.get("_counters/posts/p1/comments").get("count") == 1


class TestQueryCounter:
    """Counters driven by an arbitrary query."""

    def test_counter_document_deleted_at_zero(self, store, counters, make_change):
        store.set("posts/p1", {"userId": "u1"})
        store.set("users/u1", {"name": "Ann"})
        query = Query("posts").where("userId", "==", "u1")

        counters.update_query_counter(
            make_change("posts/p1", None, {"userId": "u1"}, event_id="e1"),
            query,
            "user_stats/u1",
            delete_on_zero=True,
        )
        assert store.get("user_stats/u1").get("postsCount") == 1

        store.delete("posts/p1")
        status = counters.update_query_counter(
            make_change("posts/p1", {"userId": "u1"}, None, event_id="e2"),
            query,
            "user_stats/u1",
            delete_on_zero=True,
        )

        assert status == "deleted"
        assert store.get("user_stats/u1") is None

    def test_counter_on_existing_document_keeps_fields(self, store, counters, make_change):
        store.set("users/u1", {"name": "Ann"})
        store.set("posts/p1", {"userId": "u1"})

        counters.update_query_counter(
            make_change("posts/p1", None, {"userId": "u1"}),
            Query("posts").where("userId", "==", "u1"),
            "users/u1",
        )

        assert store.get("users/u1").data == {"name": "Ann", "postsCount": 1}


class TestConditionCounter:
    """Counts of documents satisfying a predicate."""

    def test_recount_then_flip(self, store, counters, make_change):
        store.set("orders/o1", {"total": 150})
        store.set("orders/o2", {"total": 50})
        store.set("orders/o3", {"total": 200})

        status = counters.update_condition_counter(
            make_change("orders/o3", None, {"total": 200}, event_id="e1"),
            "total",
            ">",
            100,
        )
        assert status == "recounted"
        assert store.get("_counters/orders").get("totalCount") == 2

        store.set("orders/o2", {"total": 120})
        status = counters.update_condition_counter(
            make_change("orders/o2", {"total": 50}, {"total": 120}, event_id="e2"),
            "total",
            ">",
            100,
        )
        assert status == "incremented"
        assert store.get("_counters/orders").get("totalCount") == 3

    def test_sub_collection_counter_per_parent(self, store, counters, make_change):
        store.set("posts/p1/comments/c1", {"score": 10})
        store.set("posts/p1/comments/c2", {"score": 10})
        store.set("posts/p2/comments/c3", {"score": 10})

        counters.update_condition_counter(
            make_change("posts/p2/comments/c3", None, {"score": 10}, event_id="e1"),
            "score",
            ">",
            5,
        )
        counters.update_condition_counter(
            make_change("posts/p1/comments/c2", None, {"score": 10}, event_id="e2"),
            "score",
            ">",
            5,
        )

        for parent in ("p1", "p2"):
            matching = Query(f"posts/{parent}/comments").where("score", ">", 5)
            counter = store.get(f"_counters/posts/{parent}/comments")
            assert counter.get("scoreCount") == store.count(matching)
        assert store.get("_counters/comments") is None


class TestCategoryCounter:
    """Category document and sub-category counts."""

    @pytest.fixture
    def categories(self, store, deduplicator, test_config):
        store.set("categories/c1", {"catPath": "a"})
        store.set("categories/c2", {"catPath": "a/b", "parent": "a"})
        return CategoryCounter(store, deduplicator=deduplicator, config=test_config)

    def test_counts_category_and_ancestors(self, store, categories, make_change):
        post = {"category": "a/b", "catArray": ["a/b", "a"]}
        store.set("posts/p1", post)

        statuses = categories.category_doc_counter(make_change("posts/p1", None, post))

        assert statuses == {"a/b": "recounted", "a": "recounted"}
        assert store.get("categories/c2").get("postsCount") == 1
        assert store.get("categories/c1").get("postsCount") == 1

    def test_missing_category_document_is_skipped(self, store, categories, make_change):
        post = {"category": "a/z", "catArray": ["a/z", "a"]}
        store.set("posts/p1", post)

        statuses = categories.category_doc_counter(make_change("posts/p1", None, post))

        assert statuses == {"a/z": "skipped", "a": "recounted"}

    def test_update_is_ignored(self, categories, make_change):
        post = {"category": "a/b"}
        assert categories.category_doc_counter(make_change("posts/p1", post, post)) == {}

    def test_sub_category_count(self, store, categories, make_change):
        status = categories.sub_category_counter(
            make_change("categories/c2", None, {"catPath": "a/b", "parent": "a"})
        )

        assert status == "recounted"
        assert store.get("categories/c1").get("categoriesCount") == 1


class TestTagCounter:
    """Per-tag document counts."""

    @pytest.fixture
    def tags(self, store, deduplicator, test_config):
        return TagCounter(store, deduplicator=deduplicator, config=test_config)

    def test_tags_counted_and_released(self, store, tags, make_change):
        store.set("posts/p1", {"tags": ["Python", "AWS"]})

        statuses = tags.tag_index(
            make_change("posts/p1", None, {"tags": ["Python", "AWS"]}, event_id="e1")
        )
        assert statuses == {"python": "recounted", "aws": "recounted"}
        assert store.get("_tags/python").get("count") == 1

        store.set("posts/p1", {"tags": ["Python"]})
        statuses = tags.tag_index(
            make_change(
                "posts/p1",
                {"tags": ["Python", "AWS"]},
                {"tags": ["Python"]},
                event_id="e2",
            )
        )

        assert statuses == {"aws": "deleted"}
        assert store.get("_tags/aws") is None
        assert store.get("_tags/python").get("count") == 1

    def test_case_only_change_is_ignored(self, tags, make_change):
        statuses = tags.tag_index(
            make_change("posts/p1", {"tags": ["python"]}, {"tags": ["Python"]})
        )
        assert statuses == {}
