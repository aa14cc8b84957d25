"""
Pytest fixtures for dynamo_denorm tests.

Uses moto to mock DynamoDB.
"""

import os
from typing import Any, Generator, Mapping, Optional

import boto3
import pytest
from moto import mock_aws

from dynamo_denorm.config import DenormConfig
from dynamo_denorm.events import EventDeduplicator, RecentEventCache
from dynamo_denorm.models import Document, DocumentChange
from dynamo_denorm.store import DocumentStore

TABLE_NAME = "test-denorm"
REGION = "us-east-1"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: tests that run against a moto DynamoDB table"
    )


class MockMetrics:
    """Mock metrics recorder for testing."""

    def __init__(self) -> None:
        self.counts: list[tuple[str, int, Optional[Mapping[str, str]]]] = []

    def count(
        self,
        name: str,
        value: int,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.counts.append((name, value, dimensions))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.counts]


def build_change(
    path: str,
    before: Optional[Document] = None,
    after: Optional[Document] = None,
    event_id: str = "event-1",
    params: Optional[Mapping[str, str]] = None,
) -> DocumentChange:
    """Build a DocumentChange for a document path."""
    return DocumentChange(
        path=path,
        event_id=event_id,
        before=before,
        after=after,
        params=dict(params or {}),
    )


@pytest.fixture
def make_change():
    """Factory for DocumentChange instances."""
    return build_change


@pytest.fixture
def mock_metrics() -> MockMetrics:
    """Provide a MockMetrics instance for testing."""
    return MockMetrics()


@pytest.fixture
def aws_credentials() -> None:
    """Set up mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION


@pytest.fixture
def test_config() -> DenormConfig:
    """Create test configuration."""
    return DenormConfig(table_name=TABLE_NAME, aws_region=REGION)


@pytest.fixture
def mock_dynamodb(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mock DynamoDB table using the PK/SK document layout."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name=REGION)
        client.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        client.get_waiter("table_exists").wait(TableName=TABLE_NAME)
        yield client


@pytest.fixture
def store(mock_dynamodb: Any, test_config: DenormConfig) -> DocumentStore:
    """Create a DocumentStore with mocked DynamoDB."""
    return DocumentStore(
        table_name=TABLE_NAME,
        config=test_config,
        dynamodb_client=mock_dynamodb,
    )


@pytest.fixture
def deduplicator(
    store: DocumentStore, test_config: DenormConfig, mock_metrics: MockMetrics
) -> EventDeduplicator:
    """Deduplicator with a fresh per-test recent-event cache."""
    return EventDeduplicator(
        store,
        config=test_config,
        cache=RecentEventCache(16),
        metrics=mock_metrics,
    )
