"""
Event sinks.

Exposure, goal and attribute events leave the engine through a sink.
Sending is fire-and-forget: a sink logs its own failures and never
raises into the caller.
"""

import threading
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..models.decision import EngineEvent

EVENTS_ENDPOINT = "/events/t"


class EventSink(ABC):
    """Destination for outbound events."""

    @abstractmethod
    def send(self, event: EngineEvent) -> None:
        """Dispatch an event without raising."""


class InMemoryEventSink(EventSink):
    """Collects events in memory."""

    def __init__(self):
        self._events: List[EngineEvent] = []
        self._lock = threading.Lock()

    def send(self, event: EngineEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[EngineEvent]:
        with self._lock:
            return list(self._events)

    def by_name(self, name: str) -> List[EngineEvent]:
        return [event for event in self.events if event.name == name]

    def clear(self):
        with self._lock:
            self._events.clear()


class HttpEventSink(EventSink):
    """POSTs each event to the events endpoint."""

    def __init__(
        self,
        base_url: str,
        sdk_key: Optional[str] = None,
        timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.sdk_key = sdk_key
        self.logger = get_logger("decision_engine.events.http")
        self.client = client or httpx.Client(timeout=timeout)
        self.retry_config = retry_config or RetryConfig(max_attempts=2, base_delay=0.2, max_delay=1.0)
        self._post_with_retry = retry_on_exception(
            (httpx.TransportError, httpx.HTTPStatusError), config=self.retry_config
        )(self._post_once)

    def _post_once(self, event: EngineEvent) -> None:
        params = {"en": event.name, "a": event.account_id}
        if self.sdk_key:
            params["env"] = self.sdk_key
        response = self.client.post(f"{self.base_url}{EVENTS_ENDPOINT}", params=params, json=event.to_payload())
        response.raise_for_status()

    def send(self, event: EngineEvent) -> None:
        try:
            self._post_with_retry(event)
        except RetryError as e:
            self.logger.error(
                "Event dispatch failed",
                event_name=event.name,
                attempts=e.attempts,
                error=str(e.last_exception)
            )
            return
        except Exception as e:
            self.logger.error("Event dispatch failed", event_name=event.name, error=str(e))
            return
        self.logger.debug("Event dispatched", event_name=event.name, user_id=event.user_id)

    def close(self):
        self.client.close()
