import asyncio
from pathlib import Path

import pytest

from autostaker.core.exceptions import UpstreamBadResponse
from autostaker.core.fixtures import load_fixture
from autostaker.data.graph.provider import GraphProvider, GraphSettings, unwrap_graph_response

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "graph"
OPERATOR = "0x1111111111111111111111111111111111111111"


class DummyClient:
    def __init__(self, payload):
        self.payload = payload
        self.specs = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def request(self, spec):
        self.specs.append(spec)
        return self.payload


def _provider(payload) -> GraphProvider:
    settings = GraphSettings(api_key="test", subgraph_id="sub", gateway_url="http://graph", live=True)
    return GraphProvider(settings, http_client=DummyClient(payload))


def test_graphql_errors_raise_bad_response():
    provider = _provider(load_fixture(FIXTURE_DIR, "graphql_error.json"))
    with pytest.raises(UpstreamBadResponse, match="indexing_error"):
        asyncio.run(provider.get_current_stakes(OPERATOR))


def test_missing_data_raises_bad_response():
    provider = _provider({"data": None})
    with pytest.raises(UpstreamBadResponse):
        asyncio.run(provider.get_min_stake_per_sponsorship())


def test_malformed_payload_raises_bad_response():
    provider = _provider({"data": {"stakes": [{"id": "s1", "amountWei": "1"}]}})
    with pytest.raises(UpstreamBadResponse, match="stakes"):
        asyncio.run(provider.get_current_stakes(OPERATOR))


def test_missing_operator_yields_empty_balance():
    provider = _provider({"data": {"operator": None}})
    balance = asyncio.run(provider.get_operator_balance(OPERATOR))
    assert balance.free_balance == 0


def test_unwrap_returns_data_block():
    assert unwrap_graph_response({"data": {"network": None}}, "network") == {"network": None}
