"""
Gateway (enrichment) client.

Resolves IP addresses to geo data, user agents to parsed fields, and
answers list-membership checks for ``inlist(...)`` segments.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.errors import EnrichmentError
from shared.logging import get_logger
from shared.metrics import DecisionMetrics
from shared.retry import RetryConfig, retry_on_exception

from ..models.context import ContextVWO

GET_USER_DATA_ENDPOINT = "/server-side/getUserData"
ATTRIBUTE_CHECK_ENDPOINT = "/check-attribute"


class GatewayClient(ABC):
    """Enrichment collaborator. Failures are raised as EnrichmentError."""

    @abstractmethod
    def get_user_data(self, user_agent: Optional[str], ip_address: Optional[str]) -> ContextVWO:
        """Geo location and parsed user agent for a request."""

    @abstractmethod
    def check_attribute_in_list(self, attribute: str, list_id: str) -> bool:
        """Whether ``attribute`` is a member of list ``list_id``."""


class HttpGatewayClient(GatewayClient):
    """Gateway client over HTTP, with retries and a circuit breaker."""

    def __init__(
        self,
        base_url: str,
        account_id: Optional[int] = None,
        sdk_key: Optional[str] = None,
        timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[DecisionMetrics] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.account_id = account_id
        self.sdk_key = sdk_key
        self.metrics = metrics
        self.logger = get_logger("decision_engine.gateway.client")

        self.client = client or httpx.Client(timeout=timeout)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name="gateway_service"
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.2,
            max_delay=2.0,
            exponential_base=2.0,
            jitter=True
        )
        self._get_with_retry = retry_on_exception(
            (httpx.TransportError, httpx.HTTPStatusError), config=self.retry_config
        )(self._get_once)

    def _base_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.account_id is not None:
            params["accountId"] = self.account_id
        if self.sdk_key:
            params["sdkKey"] = self.sdk_key
        return params

    def _get_once(self, endpoint: str, params: Dict[str, Any]) -> Any:
        response = self.client.get(f"{self.base_url}{endpoint}", params=params)
        response.raise_for_status()
        return response.json()

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        try:
            return self.circuit_breaker.call(self._get_with_retry, endpoint, {**self._base_params(), **params})
        except Exception as exc:
            self.logger.error("Gateway request failed", endpoint=endpoint, error=str(exc))
            if self.metrics is not None:
                self.metrics.record_gateway_error(endpoint)
            raise EnrichmentError(endpoint, "Gateway service unavailable", {"error": str(exc)}) from exc

    def get_user_data(self, user_agent: Optional[str], ip_address: Optional[str]) -> ContextVWO:
        params: Dict[str, Any] = {}
        if user_agent:
            params["userAgent"] = user_agent
        if ip_address:
            params["ipAddress"] = ip_address

        data = self._get(GET_USER_DATA_ENDPOINT, params)
        if not isinstance(data, dict):
            raise EnrichmentError(GET_USER_DATA_ENDPOINT, "Malformed gateway response")
        return ContextVWO.from_dict(data)

    def check_attribute_in_list(self, attribute: str, list_id: str) -> bool:
        data = self._get(ATTRIBUTE_CHECK_ENDPOINT, {"attribute": attribute, "listId": list_id})
        if isinstance(data, dict):
            return bool(data.get("status", data.get("result", False)))
        if isinstance(data, str):
            return data.strip().lower() == "true"
        return bool(data)

    def close(self):
        self.client.close()
