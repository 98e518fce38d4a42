"""
Unit tests for the HTTP gateway client.
"""

import httpx
import pytest

from decision_engine.gateway.client import ATTRIBUTE_CHECK_ENDPOINT, GET_USER_DATA_ENDPOINT, HttpGatewayClient
from shared.circuit_breaker import CircuitBreaker
from shared.errors import EnrichmentError
from shared.metrics import DecisionMetrics
from shared.retry import RetryConfig


def make_client(handler, **kwargs):
    """Gateway client over a mock transport."""
    retry_config = kwargs.pop("retry_config", RetryConfig(max_attempts=2, base_delay=0, jitter=False))
    return HttpGatewayClient(
        "https://gateway.example.com/",
        account_id=123456,
        sdk_key="test-sdk-key",
        retry_config=retry_config,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        **kwargs
    )


class TestHttpGatewayClient:
    """Test cases for HttpGatewayClient."""

    def test_get_user_data(self):
        """Test geo and user-agent data are parsed into ContextVWO."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "location": {"country": "US", "city": "Austin"},
                "userAgent": {"os": "Windows", "browser_string": "Chrome"},
            })

        vwo = make_client(handler).get_user_data("Mozilla/5.0", "1.2.3.4")

        assert vwo.location["country"] == "US"
        assert vwo.ua_info["os"] == "Windows"
        request = requests[0]
        assert request.url.path == GET_USER_DATA_ENDPOINT
        assert request.url.params["accountId"] == "123456"
        assert request.url.params["sdkKey"] == "test-sdk-key"
        assert request.url.params["ipAddress"] == "1.2.3.4"

    def test_attribute_in_list(self):
        def handler(request):
            assert request.url.path == ATTRIBUTE_CHECK_ENDPOINT
            assert request.url.params["listId"] == "list-1"
            return httpx.Response(200, json={"status": request.url.params["attribute"] == "a@example.com"})

        client = make_client(handler)

        assert client.check_attribute_in_list("a@example.com", "list-1") is True
        assert client.check_attribute_in_list("b@example.com", "list-1") is False

    def test_server_error_raises_enrichment_error(self):
        """Test failures surface as EnrichmentError after retries."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        metrics = DecisionMetrics()
        client = make_client(handler, metrics=metrics)

        with pytest.raises(EnrichmentError):
            client.get_user_data("Mozilla/5.0", None)

        assert len(calls) == 2
        assert metrics.get_metric("gateway_errors_total").labels(endpoint=GET_USER_DATA_ENDPOINT)._value.get() == 1

    def test_retry_recovers(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"location": {"country": "DE"}})])

        client = make_client(lambda request: next(responses))

        assert client.get_user_data(None, "1.2.3.4").location == {"country": "DE"}

    def test_malformed_response(self):
        client = make_client(lambda request: httpx.Response(200, json=["unexpected"]))

        with pytest.raises(EnrichmentError):
            client.get_user_data(None, "1.2.3.4")

    def test_open_circuit_blocks_calls(self):
        """Test an open circuit fails fast without hitting the transport."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60.0, name="test_gateway")
        client = make_client(handler, circuit_breaker=breaker, retry_config=RetryConfig(max_attempts=1))

        with pytest.raises(EnrichmentError):
            client.get_user_data(None, "1.2.3.4")
        assert breaker.is_open()

        with pytest.raises(EnrichmentError):
            client.get_user_data(None, "1.2.3.4")
        assert len(calls) == 1
