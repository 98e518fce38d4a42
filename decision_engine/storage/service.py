"""
Storage service.

Wraps a connector so that the decision pipeline only ever sees
"record" or "no record": connector failures are logged as StorageError
and become cache misses or failed writes.
"""

from typing import Optional

from shared.errors import ConfigurationError, StorageError
from shared.logging import get_logger
from shared.metrics import DecisionMetrics

from ..models.decision import StickyAssignment
from .connectors import StorageConnector


class StorageService:
    """Sticky-assignment reads and writes through a pluggable connector."""

    def __init__(self, connector: Optional[StorageConnector] = None, metrics: Optional[DecisionMetrics] = None):
        self.connector = connector
        self.metrics = metrics
        self.logger = get_logger("decision_engine.storage")

    @property
    def enabled(self) -> bool:
        return self.connector is not None

    def get_data(self, feature_key: str, user_id: str) -> Optional[StickyAssignment]:
        """Stored assignment, or ``None`` when absent, invalid or unreadable."""
        if self.connector is None:
            return None
        try:
            raw = self.connector.get(feature_key, str(user_id))
        except Exception as e:
            self._report(StorageError("Failed to read sticky assignment", {"feature_key": feature_key}), "get", e)
            return None

        if raw is None:
            return None
        record = StickyAssignment.from_dict(raw)
        if record is None:
            self.logger.warning("Ignoring malformed stored record", feature_key=feature_key, user_id=str(user_id))
        return record

    def set_data(self, record: StickyAssignment) -> bool:
        """Persist an assignment; returns False if rejected or the write fails."""
        if self.connector is None:
            return False
        try:
            self._validate(record)
        except ConfigurationError as e:
            self.logger.error("Rejected sticky assignment", error=e.message, **e.details)
            return False

        try:
            result = self.connector.set(record.to_dict())
        except Exception as e:
            self._report(StorageError("Failed to write sticky assignment", {"feature_key": record.feature_key}), "set", e)
            return False
        return result is not False

    @staticmethod
    def _validate(record: StickyAssignment):
        if not record.feature_key:
            raise ConfigurationError("Sticky assignment requires a feature key")
        if record.user_id is None or record.user_id == "":
            raise ConfigurationError("Sticky assignment requires a user id", {"feature_key": record.feature_key})
        if record.rollout_key and record.rollout_variation_id is None:
            raise ConfigurationError("Rollout key without variation id", {"feature_key": record.feature_key})
        if record.experiment_key and record.experiment_variation_id is None:
            raise ConfigurationError("Experiment key without variation id", {"feature_key": record.feature_key})

    def _report(self, error: StorageError, operation: str, cause: Exception):
        self.logger.error(error.message, code=error.code, operation=operation, error=str(cause), **error.details)
        if self.metrics is not None:
            self.metrics.record_storage_error(operation)
