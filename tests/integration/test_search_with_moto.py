"""
Integration tests for SearchEngine indexes against moto DynamoDB.
"""

import pytest

from dynamo_denorm.models import Query
from dynamo_denorm.search import SearchEngine

pytestmark = pytest.mark.integration

TITLE_INDEX = "_search/posts/title"


@pytest.fixture
def search(store, test_config, mock_metrics):
    return SearchEngine(store, config=test_config, metrics=mock_metrics)


def _ids(store, collection):
    return sorted(s.id for s in store.query(Query(collection)))


class TestFullTextIndex:
    """Phrase documents per indexed field."""

    def test_phrase_documents(self, store, search, mock_metrics, make_change):
        status = search.full_text_index(
            make_change("posts/p1", None, {"title": "The quick brown fox"}),
            "title",
            chunk_word_count=2,
        )

        assert status == "indexed"
        assert _ids(store, TITLE_INDEX) == [
            "brown fox__p1",
            "fox__p1",
            "quick brown__p1",
            "the quick__p1",
        ]
        assert store.get(f"{TITLE_INDEX}/fox__p1").data == {"id": "p1"}
        assert ("SearchPhrasesWritten", 4, {"engine": "SearchEngine"}) in mock_metrics.counts

    def test_delete_removes_every_phrase(self, store, search, make_change):
        doc = {"title": "The quick brown fox"}
        search.full_text_index(make_change("posts/p1", None, doc), "title")
        search.full_text_index(make_change("posts/p2", None, {"title": "fox"}), "title")

        status = search.full_text_index(make_change("posts/p1", doc, None), "title")

        assert status == "deleted"
        assert store.query(Query(TITLE_INDEX).where("id", "==", "p1")) == []
        assert _ids(store, TITLE_INDEX) == ["fox__p2"]

    def test_update_replaces_phrases(self, store, search, make_change):
        search.full_text_index(
            make_change("posts/p1", None, {"title": "old words"}), "title"
        )

        status = search.full_text_index(
            make_change("posts/p1", {"title": "old words"}, {"title": "new"}), "title"
        )

        assert status == "indexed"
        assert _ids(store, TITLE_INDEX) == ["new__p1"]

    def test_unrelated_update_is_skipped(self, store, search, make_change):
        status = search.full_text_index(
            make_change("posts/p1", {"title": "a", "n": 1}, {"title": "a", "n": 2}),
            "title",
        )
        assert status == "skipped"
        assert _ids(store, TITLE_INDEX) == []

    def test_map_shape_with_custom_foreign_key(self, store, search, make_change):
        search.full_text_index(
            make_change("posts/p1", None, {"title": "Fox", "userId": "u1"}),
            "title",
            foreign_key="userId",
            index_shape="map",
        )

        assert store.get(f"{TITLE_INDEX}/fox__p1").data == {
            "userId": "u1",
            "_terms": {"f": True, "fo": True, "fox": True},
        }

    def test_array_shape(self, store, search, make_change):
        search.full_text_index(
            make_change("posts/p1", None, {"title": "Fox"}), "title", index_shape="array"
        )

        assert store.get(f"{TITLE_INDEX}/fox__p1").get("_terms") == ["f", "fo", "fox"]

    def test_html_is_stripped(self, store, search, make_change):
        search.full_text_index(
            make_change("posts/p1", None, {"title": "<p>Big&nbsp;<b>Fox</b></p>"}),
            "title",
        )

        assert _ids(store, TITLE_INDEX) == ["big fox__p1", "fox__p1"]


class TestRelevanceIndex:
    """Term-frequency ranking."""

    @pytest.fixture(autouse=True)
    def seed(self, store):
        store.set("posts/p1", {"title": "quick quick quick", "body": "quick quick"})
        store.set("posts/p2", {"title": "quiet", "body": "fox"})

    def test_merged_index(self, store, search, make_change):
        search.relevant_index(
            make_change("posts/p1", None, store.get("posts/p1").data), ["title", "body"]
        )
        search.relevant_index(
            make_change("posts/p2", None, store.get("posts/p2").data), ["title", "body"]
        )

        quick = search.relevant_search("quick", "posts")
        prefix = search.relevant_search("qu", "posts")

        assert [(r.id, r.relevance) for r in quick] == [("p1", 5)]
        assert [r.id for r in prefix] == ["p1", "p2"]
        assert [r.id for r in search.relevant_search("qu", "posts", start_id="p1")] == [
            "p2"
        ]

    def test_per_field_relevance_is_summed(self, search):
        assert search.init_relevant_index("posts", ["title", "body"], merged=False) == 2

        results = search.relevant_search("quick", "posts", fields=["title", "body"])

        assert [(r.id, r.relevance) for r in results] == [("p1", 5)]

    def test_delete_removes_index(self, store, search, make_change):
        doc = store.get("posts/p1").data
        search.relevant_index(make_change("posts/p1", None, doc), ["title"])

        status = search.relevant_index(make_change("posts/p1", doc, None), ["title"])

        assert status == "deleted"
        assert store.get("_search/posts/_merged/p1") is None

    def test_start_id_needs_merged_index(self, search):
        with pytest.raises(ValueError):
            search.relevant_search("quick", "posts", fields=["title"], start_id="p1")

    def test_empty_query(self, search):
        assert search.relevant_search("  !! ", "posts") == []


class TestTrigramIndex:
    """Approximate matching by trigram overlap."""

    @pytest.fixture(autouse=True)
    def seed(self, store, search):
        store.set("pets/p1", {"name": "cats"})
        store.set("pets/p2", {"name": "cat"})
        store.set("pets/p3", {"name": "dog"})
        search.init_trigram_index("pets", ["name"])

    def test_full_match_ranks_first(self, search):
        results = search.trigram_search("cats", "pets")

        assert [(r.id, r.relevance) for r in results] == [("p1", 7), ("p2", 2)]

    def test_single_trigram_query(self, search):
        results = search.trigram_search("cat", "pets")

        assert sorted((r.id, r.relevance) for r in results) == [("p1", 3), ("p2", 3)]

    def test_delete_removes_index(self, store, search, make_change):
        status = search.trigram_index(
            make_change("pets/p3", {"name": "dog"}, None), ["name"]
        )

        assert status == "deleted"
        assert search.trigram_search("dog", "pets") == []

    def test_per_field_index(self, store, search, make_change):
        search.trigram_index(
            make_change("pets/p4", None, {"name": "owl"}), ["name"], merged=False
        )

        assert store.get("_trigrams/pets/name/p4").get("_term") == {"owl": True}
        assert [r.id for r in search.trigram_search("owl", "pets", fields=["name"])] == [
            "p4"
        ]
