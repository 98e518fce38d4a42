"""
Decision engine facade.

Public entry point: flag evaluation, goal tracking and visitor
attributes against a prepared settings snapshot.
"""

from typing import Any, Dict, Optional, Union

from shared.circuit_breaker import CircuitBreaker
from shared.config import EngineConfig, get_config
from shared.errors import ConfigurationError
from shared.logging import bind_evaluation_context, clear_context, configure_logging, get_logger
from shared.metrics import DecisionMetrics
from shared.retry import RetryConfig

from .constants import API_SET_ATTRIBUTE, API_TRACK_EVENT, EVENT_SYNC_VISITOR_PROP
from .events.sinks import EventSink, HttpEventSink
from .gateway.client import GatewayClient, HttpGatewayClient
from .models.builder import build_settings
from .models.context import Context
from .models.decision import EngineEvent, FlagResult
from .models.settings import Settings
from .rules.engine import DecisionPipeline, Hook
from .storage.connectors import StorageConnector
from .storage.redis_connector import RedisStorageConnector
from .storage.service import StorageService

ContextInput = Union[Context, Dict[str, Any]]


class DecisionEngine:
    """Evaluates feature flags for users.

    None of the public methods raise; failures are logged and surface
    as a disabled flag or a ``False`` tracking status.
    """

    def __init__(
        self,
        settings: Union[Settings, Dict[str, Any]],
        storage: Optional[StorageConnector] = None,
        gateway: Optional[GatewayClient] = None,
        event_sink: Optional[EventSink] = None,
        hook: Optional[Hook] = None,
        metrics: Optional[DecisionMetrics] = None
    ):
        self.logger = get_logger("decision_engine.client")
        self._settings = build_settings(settings)
        self.storage = StorageService(storage, metrics)
        self.pipeline = DecisionPipeline(
            storage=self.storage,
            gateway=gateway,
            event_sink=event_sink,
            hook=hook,
            metrics=metrics
        )

    @classmethod
    def from_config(
        cls,
        raw_settings: Dict[str, Any],
        config: Optional[EngineConfig] = None,
        hook: Optional[Hook] = None,
        metrics: Optional[DecisionMetrics] = None
    ) -> "DecisionEngine":
        """Build an engine whose collaborators are wired from ``config``."""
        config = config or get_config()
        configure_logging("decision_engine", config.log_level)
        settings = build_settings(raw_settings)
        account_id = config.account_id if config.account_id is not None else settings.account_id
        sdk_key = config.sdk_key or settings.sdk_key

        retry_config = RetryConfig(max_attempts=config.retry_attempts, base_delay=config.retry_base_delay)

        storage = None
        if config.redis_url:
            storage = RedisStorageConnector(
                redis_url=config.redis_url,
                prefix=config.storage_prefix,
                ttl_seconds=config.storage_ttl_seconds
            )

        gateway = None
        if config.gateway_url:
            gateway = HttpGatewayClient(
                config.gateway_url,
                account_id=account_id,
                sdk_key=sdk_key,
                timeout=config.gateway_timeout,
                retry_config=retry_config,
                circuit_breaker=CircuitBreaker(
                    failure_threshold=config.circuit_failure_threshold,
                    recovery_timeout=config.circuit_recovery_timeout,
                    name="gateway_service"
                ),
                metrics=metrics
            )

        event_sink = None
        if config.events_url:
            event_sink = HttpEventSink(
                config.events_url,
                sdk_key=sdk_key,
                timeout=config.events_timeout,
                retry_config=retry_config
            )

        return cls(settings, storage=storage, gateway=gateway, event_sink=event_sink, hook=hook, metrics=metrics)

    @property
    def settings(self) -> Settings:
        return self._settings

    def update_settings(self, settings: Union[Settings, Dict[str, Any]]) -> bool:
        """Swap in a new snapshot; evaluations in flight keep the old one.

        Invalid settings are logged and rejected, and the current
        snapshot stays in place.
        """
        try:
            snapshot = build_settings(settings)
        except ConfigurationError as e:
            self.logger.error("Settings update rejected", error=e.message)
            return False
        self._settings = snapshot
        self.logger.info("Settings updated", account_id=snapshot.account_id, version=snapshot.version)
        return True

    def get_flag(self, feature_key: str, context: ContextInput) -> FlagResult:
        settings = self._settings
        user_context = self._to_context(context)
        if user_context is None:
            return FlagResult(False, [])
        if not isinstance(feature_key, str) or not feature_key:
            self.logger.error("Invalid feature key", feature_key=feature_key)
            return FlagResult(False, [])
        return self.pipeline.get_flag(settings, feature_key, user_context)

    def track_event(
        self,
        event_name: str,
        context: ContextInput,
        event_properties: Optional[Dict[str, Any]] = None
    ) -> Dict[str, bool]:
        """Send a goal event; ``{event_name: True}`` if it was dispatched."""
        settings = self._settings
        user_context = self._to_context(context)
        if user_context is None:
            return {event_name: False}
        if not isinstance(event_name, str) or not event_name:
            self.logger.error("Invalid event name", event_name=event_name)
            return {event_name: False}
        if event_properties is not None and not isinstance(event_properties, dict):
            self.logger.error("Invalid event properties", event_name=event_name)
            return {event_name: False}

        bind_evaluation_context(API_TRACK_EVENT, user_id=user_context.id)
        try:
            if not settings.has_event(event_name):
                self.logger.error("Event not found in any feature metrics", event_name=event_name)
                return {event_name: False}

            self.pipeline.dispatch(EngineEvent(
                name=event_name,
                account_id=settings.account_id,
                user_id=user_context.id,
                uuid=user_context.get_uuid(settings.account_id),
                session_id=user_context.session_id,
                properties=dict(event_properties or {}),
                is_custom_event=True,
                user_agent=user_context.user_agent,
                ip_address=user_context.ip_address,
            ))
            self.pipeline.execute_hook({"api": API_TRACK_EVENT, "event_name": event_name, "user_id": user_context.id})
            return {event_name: True}
        except Exception as e:
            self.logger.error("Event tracking failed", event_name=event_name, error=str(e))
            return {event_name: False}
        finally:
            clear_context()

    def set_attribute(self, attributes: Dict[str, Any], context: ContextInput):
        """Sync visitor attributes for the user."""
        settings = self._settings
        user_context = self._to_context(context)
        if user_context is None:
            return
        if not isinstance(attributes, dict) or not attributes:
            self.logger.error("Attributes should be a non-empty dictionary")
            return

        bind_evaluation_context(API_SET_ATTRIBUTE, user_id=user_context.id)
        try:
            self.pipeline.dispatch(EngineEvent(
                name=EVENT_SYNC_VISITOR_PROP,
                account_id=settings.account_id,
                user_id=user_context.id,
                uuid=user_context.get_uuid(settings.account_id),
                session_id=user_context.session_id,
                visitor_properties=dict(attributes),
                user_agent=user_context.user_agent,
                ip_address=user_context.ip_address,
            ))
        except Exception as e:
            self.logger.error("Setting attributes failed", error=str(e))
        finally:
            clear_context()

    def _to_context(self, context: ContextInput) -> Optional[Context]:
        if isinstance(context, Context):
            if context.id is None or str(context.id) == "":
                self.logger.error("Invalid context", error="id is required")
                return None
            return context
        try:
            return Context.from_dict(context)
        except ConfigurationError as e:
            self.logger.error("Invalid context", error=e.message, **e.details)
            return None
