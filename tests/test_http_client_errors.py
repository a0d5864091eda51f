import asyncio

import httpx
import pytest

from autostaker.core.exceptions import UpstreamBadResponse, UpstreamError, UpstreamRateLimited
from autostaker.core.request_spec import GraphQLSpec
from autostaker.data.graph.provider import CircuitBreaker, CircuitBreakerOpen, GraphHttpClient

NETWORK_QUERY_SPEC = GraphQLSpec(
    base_url="http://graph.test",
    path="/subgraphs/id/sub",
    operation_name="NetworkMinimumStake",
    document="query NetworkMinimumStake { network(id: \"x\") { minimumStakeWei } }",
)


def _client(handler, max_retries: int = 0) -> GraphHttpClient:
    transport = httpx.MockTransport(handler)
    return GraphHttpClient(
        max_retries=max_retries,
        backoff_base=0.1,
        backoff_max=0.1,
        async_client=httpx.AsyncClient(transport=transport),
    )


def test_rate_limit_raises():
    client = _client(lambda request: httpx.Response(429))
    with pytest.raises(UpstreamRateLimited):
        asyncio.run(client.request(NETWORK_QUERY_SPEC))


def test_server_error_raises_bad_response():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(UpstreamBadResponse) as exc_info:
        asyncio.run(client.request(NETWORK_QUERY_SPEC))
    assert exc_info.value.status_code == 500


def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400)

    client = _client(handler, max_retries=2)
    with pytest.raises(UpstreamBadResponse):
        asyncio.run(client.request(NETWORK_QUERY_SPEC))
    assert len(calls) == 1


def test_transient_failure_then_success():
    responses = [httpx.Response(503), httpx.Response(200, json={"data": {"network": None}})]
    posted = []

    def handler(request):
        posted.append(request)
        return responses.pop(0)

    client = _client(handler, max_retries=1)
    payload = asyncio.run(client.request(NETWORK_QUERY_SPEC))

    assert payload == {"data": {"network": None}}
    assert len(posted) == 2
    assert posted[0].method == "POST"
    assert b"NetworkMinimumStake" in posted[0].content


def test_invalid_json_raises_bad_response():
    client = _client(lambda request: httpx.Response(200, content=b"not json"))
    with pytest.raises(UpstreamBadResponse, match="invalid JSON"):
        asyncio.run(client.request(NETWORK_QUERY_SPEC))


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(failure_threshold=2, cooldown_sec=30)
    breaker.record_failure()
    assert breaker.allow()
    breaker.record_failure()
    assert not breaker.allow()

    client = GraphHttpClient(async_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
    client._circuit_breaker = breaker
    with pytest.raises(CircuitBreakerOpen):
        asyncio.run(client.request(NETWORK_QUERY_SPEC))


def test_connection_failure_raises_upstream_error():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler, max_retries=1)
    with pytest.raises(UpstreamError, match="Subgraph unreachable") as exc_info:
        asyncio.run(client.request(NETWORK_QUERY_SPEC))
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert len(attempts) == 2
