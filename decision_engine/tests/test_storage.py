"""
Unit tests for storage connectors and the storage service.
"""

import json

import pytest
from unittest.mock import MagicMock

from decision_engine.models.decision import StickyAssignment
from decision_engine.storage.connectors import InMemoryStorageConnector
from decision_engine.storage.redis_connector import RedisStorageConnector
from decision_engine.storage.service import StorageService
from shared.metrics import DecisionMetrics


@pytest.fixture
def record():
    """Sticky assignment with rollout and experiment."""
    return StickyAssignment(
        feature_key="checkout",
        user_id="user-1",
        rollout_id=10,
        rollout_key="checkout_rollout",
        rollout_variation_id=1,
        experiment_id=20,
        experiment_key="checkout_test",
        experiment_variation_id=2
    )


class TestInMemoryStorageConnector:
    """Test cases for InMemoryStorageConnector."""

    def test_set_and_get(self, record):
        connector = InMemoryStorageConnector()
        connector.set(record.to_dict())

        assert connector.get("checkout", "user-1") == record.to_dict()
        assert connector.get("checkout", "user-2") is None
        assert len(connector) == 1

    def test_last_write_wins(self, record):
        connector = InMemoryStorageConnector()
        connector.set(record.to_dict())
        connector.set({**record.to_dict(), "experiment_variation_id": 1})

        assert connector.get("checkout", "user-1")["experiment_variation_id"] == 1
        assert len(connector) == 1

    def test_returns_copies(self, record):
        """Test callers cannot mutate stored records."""
        connector = InMemoryStorageConnector()
        connector.set(record.to_dict())

        connector.get("checkout", "user-1")["experiment_key"] = "changed"
        assert connector.get("checkout", "user-1")["experiment_key"] == "checkout_test"


class TestRedisStorageConnector:
    """Test cases for RedisStorageConnector."""

    @pytest.fixture
    def mock_redis(self):
        return MagicMock()

    def test_get_decodes_json(self, mock_redis, record):
        mock_redis.get.return_value = json.dumps(record.to_dict())
        connector = RedisStorageConnector(client=mock_redis, prefix="test:")

        assert connector.get("checkout", "user-1") == record.to_dict()
        mock_redis.get.assert_called_once_with("test:checkout_user-1")

    def test_get_miss(self, mock_redis):
        mock_redis.get.return_value = None
        connector = RedisStorageConnector(client=mock_redis)

        assert connector.get("checkout", "user-1") is None

    def test_set_with_ttl(self, mock_redis, record):
        connector = RedisStorageConnector(client=mock_redis, prefix="test:", ttl_seconds=60)

        assert connector.set(record.to_dict())
        mock_redis.setex.assert_called_once_with("test:checkout_user-1", 60, json.dumps(record.to_dict()))

    def test_set_without_ttl(self, mock_redis, record):
        connector = RedisStorageConnector(client=mock_redis, prefix="test:")

        connector.set(record.to_dict())
        mock_redis.set.assert_called_once_with("test:checkout_user-1", json.dumps(record.to_dict()))

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisStorageConnector()


class TestStorageService:
    """Test cases for StorageService."""

    def test_round_trip(self, record):
        service = StorageService(InMemoryStorageConnector())

        assert service.set_data(record)
        assert service.get_data("checkout", "user-1") == record

    def test_disabled_without_connector(self, record):
        service = StorageService()

        assert not service.enabled
        assert service.get_data("checkout", "user-1") is None
        assert service.set_data(record) is False

    @pytest.mark.parametrize("invalid", [
        StickyAssignment(feature_key="", user_id="user-1", experiment_key="x", experiment_variation_id=1),
        StickyAssignment(feature_key="checkout", user_id="", experiment_key="x", experiment_variation_id=1),
        StickyAssignment(feature_key="checkout", user_id="user-1", rollout_key="x"),
        StickyAssignment(feature_key="checkout", user_id="user-1", experiment_key="x"),
    ])
    def test_invalid_records_are_rejected(self, invalid):
        """Test malformed assignments are never written."""
        connector = InMemoryStorageConnector()
        service = StorageService(connector)

        assert service.set_data(invalid) is False
        assert len(connector) == 0

    def test_malformed_stored_record_is_a_miss(self):
        connector = InMemoryStorageConnector()
        connector.set({"feature_key": "checkout", "user_id": "user-1", "rollout_key": "x"})

        assert StorageService(connector).get_data("checkout", "user-1") is None

    def test_connector_failures_are_contained(self, record):
        """Test connector exceptions become misses and failed writes."""
        connector = MagicMock()
        connector.get.side_effect = ConnectionError("redis down")
        connector.set.side_effect = ConnectionError("redis down")
        metrics = DecisionMetrics()
        service = StorageService(connector, metrics)

        assert service.get_data("checkout", "user-1") is None
        assert service.set_data(record) is False
        assert metrics.get_metric("storage_errors_total").labels(operation="get")._value.get() == 1
        assert metrics.get_metric("storage_errors_total").labels(operation="set")._value.get() == 1
