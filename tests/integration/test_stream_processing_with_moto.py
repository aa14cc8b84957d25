"""
End-to-end stream processing against moto DynamoDB.

Stream records are built from the items actually stored in the table, then
routed to engine handlers.
"""

import pytest

from dynamo_denorm.counters import CounterEngine
from dynamo_denorm.parsing import StreamRouter, process_stream_event
from dynamo_denorm.search import SearchEngine
from dynamo_denorm.store import serialize_document

pytestmark = pytest.mark.integration


def _stream_record(event_id, pk, sk, old=None, new=None):
    dynamodb = {"Keys": {"PK": {"S": pk}, "SK": {"S": sk}}}
    if old is not None:
        dynamodb["OldImage"] = serialize_document(old)
    if new is not None:
        dynamodb["NewImage"] = serialize_document(new)
    if old is None:
        name = "INSERT"
    elif new is None:
        name = "REMOVE"
    else:
        name = "MODIFY"
    return {"eventID": event_id, "eventName": name, "dynamodb": dynamodb}


@pytest.fixture
def router(store, test_config, mock_metrics):
    router = StreamRouter()

    @router.route("posts/{docId}")
    def count_posts(change, deduplicator):
        return CounterEngine(
            store, deduplicator=deduplicator, config=test_config
        ).update_collection_counter(change)

    @router.route("posts/{docId}")
    def index_titles(change, deduplicator):
        return SearchEngine(
            store, deduplicator=deduplicator, config=test_config, metrics=mock_metrics
        ).full_text_index(change, "title")

    return router


class TestStreamProcessing:
    """Several handlers share one deduplicator per invocation."""

    def test_insert_runs_every_handler(self, store, router, test_config, mock_metrics):
        store.set("posts/p1", {"title": "Hello"})
        event = {
            "Records": [
                _stream_record("e1", "posts", "p1", new={"title": "Hello"}),
                _stream_record("e2", "users", "u1", new={"name": "Ann"}),
            ]
        }

        response = process_stream_event(
            event, router, store=store, config=test_config, metrics=mock_metrics
        )

        assert response.to_dict() == {
            "statusCode": 200,
            "processed_records": 1,
            "skipped_records": 1,
        }
        assert store.get("_counters/posts").get("count") == 1
        assert store.exists("_search/posts/title/hello__p1")
        assert store.exists("_events/e1")

    def test_redelivered_event_is_ignored(self, store, router, test_config):
        store.set("posts/p1", {"title": "Hello"})
        store.set("posts/p2", {"title": "World"})
        event = {
            "Records": [_stream_record("e1", "posts", "p2", new={"title": "World"})]
        }

        process_stream_event(event, router, store=store, config=test_config)
        process_stream_event(event, router, store=store, config=test_config)

        assert store.get("_counters/posts").get("count") == 2
