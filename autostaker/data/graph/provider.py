from __future__ import annotations

import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from autostaker.config import repo_root
from autostaker.core.exceptions import ProviderMisconfigured, UpstreamBadResponse, UpstreamError, UpstreamRateLimited
from autostaker.core.fixtures import load_fixture
from autostaker.core.request_spec import GraphQLSpec, RequestSpec
from autostaker.data.graph.request_factory import GraphRequestFactory
from autostaker.data.graph.schemas import (
    GraphResponse,
    GraphSponsorship,
    NetworkData,
    OperatorData,
    QueueEntriesData,
    SponsorshipsData,
    StakesData,
)
from autostaker.data.types import OperatorBalance, SponsorshipListing, StakeableSponsorship

# Streamr network subgraph on The Graph decentralized network.
DEFAULT_SUBGRAPH_ID = "EGWFdhhiWypDuz22Uy7b3F69E9MEkyfU9iAQMttkH5Rj"
DEFAULT_GATEWAY_URL = "https://gateway-arbitrum.network.thegraph.com"


class CircuitBreakerOpen(RuntimeError):
    pass


M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class GraphSettings:
    api_key: str
    subgraph_id: str
    gateway_url: str
    live: bool

    @classmethod
    def from_env(cls) -> "GraphSettings":
        api_key = os.getenv("GRAPH_API_KEY", "").strip()
        subgraph_id = os.getenv("GRAPH_SUBGRAPH_ID", DEFAULT_SUBGRAPH_ID).strip()
        gateway_url = os.getenv("GRAPH_GATEWAY_URL", DEFAULT_GATEWAY_URL).strip().rstrip("/")
        live_flag = os.getenv("GRAPH_LIVE", "0").strip().lower() in {"1", "true", "yes"}
        if live_flag and not api_key:
            raise ProviderMisconfigured("GRAPH_API_KEY is required when GRAPH_LIVE=1")
        if not subgraph_id:
            raise ProviderMisconfigured("GRAPH_SUBGRAPH_ID must not be empty")
        return cls(
            api_key=api_key,
            subgraph_id=subgraph_id,
            gateway_url=gateway_url,
            live=live_flag and bool(api_key),
        )


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: Optional[float] = None) -> None:
        self.rate_per_sec = max(rate_per_sec, 0.1)
        self.capacity = capacity or self.rate_per_sec
        self.tokens = self.capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, amount: float = 1.0) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                elapsed = now - self.last_refill
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.last_refill = now
                if self.tokens >= amount:
                    self.tokens -= amount
                    return
                wait_time = (amount - self.tokens) / self.rate_per_sec
            await asyncio.sleep(wait_time)


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 5, cooldown_sec: float = 30.0) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_sec = max(1.0, cooldown_sec)
        self.failures = 0
        self.open_until = 0.0

    def allow(self) -> bool:
        if self.open_until and time.monotonic() < self.open_until:
            return False
        return True

    def record_success(self) -> None:
        self.failures = 0
        self.open_until = 0.0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            self.open_until = time.monotonic() + self.cooldown_sec
            self.failures = 0


class GraphHttpClient:
    def __init__(
        self,
        timeout: float = 15.0,
        rps: float = 4.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = max(0.1, backoff_base)
        self.backoff_max = max(backoff_max, self.backoff_base)
        self._client = async_client
        self._owns_client = async_client is None
        self._rate_limiter = TokenBucket(rate_per_sec=rps)
        self._circuit_breaker = CircuitBreaker()

    async def __aenter__(self) -> "GraphHttpClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, spec: RequestSpec | GraphQLSpec) -> Dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        if not self._circuit_breaker.allow():
            raise CircuitBreakerOpen("Subgraph circuit breaker is open")

        request_spec = spec.to_request_spec() if isinstance(spec, GraphQLSpec) else spec
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.request(
                    request_spec.method,
                    f"{request_spec.base_url}{request_spec.path}",
                    params=request_spec.query,
                    headers=request_spec.headers,
                    json=request_spec.json,
                )
                if resp.status_code == 429:
                    self._circuit_breaker.record_failure()
                    last_error = UpstreamRateLimited("Subgraph rate limited", status_code=resp.status_code)
                    if attempt >= self.max_retries:
                        break
                    await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))
                    continue
                if resp.status_code >= 500:
                    self._circuit_breaker.record_failure()
                    last_error = UpstreamBadResponse("Subgraph upstream error", status_code=resp.status_code)
                    if attempt >= self.max_retries:
                        break
                    await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))
                    continue
                if resp.status_code >= 400:
                    raise UpstreamBadResponse("Subgraph request rejected", status_code=resp.status_code)
                try:
                    payload = resp.json()
                except ValueError as exc:
                    raise UpstreamBadResponse("Subgraph returned invalid JSON") from exc
                self._circuit_breaker.record_success()
                return payload
            except httpx.HTTPError as exc:
                self._circuit_breaker.record_failure()
                last_error = exc
                if attempt >= self.max_retries:
                    break
                await self._sleep_backoff(attempt)
        if isinstance(last_error, httpx.HTTPError):
            raise UpstreamError(f"Subgraph unreachable: {last_error!r}") from last_error
        if last_error:
            raise last_error
        raise RuntimeError("Subgraph request failed without a response")

    async def _sleep_backoff(self, attempt: int, retry_after: Optional[str] = None) -> None:
        if retry_after:
            try:
                await asyncio.sleep(float(retry_after))
                return
            except ValueError:
                pass
        delay = min(self.backoff_max, self.backoff_base * (2**attempt))
        await asyncio.sleep(delay)


def _validate_model(payload: Any, model: Type[M], context: str) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Subgraph {context} response invalid") from exc


def unwrap_graph_response(payload: Any, context: str) -> Dict[str, Any]:
    response = _validate_model(payload, GraphResponse, context)
    if response.errors:
        messages = ", ".join(error.message for error in response.errors)
        raise UpstreamBadResponse(f"GraphQL error: {messages}")
    if response.data is None:
        raise UpstreamBadResponse(f"Subgraph {context} response has no data")
    return response.data


def sponsorship_from_graph(item: GraphSponsorship) -> StakeableSponsorship:
    return StakeableSponsorship(
        id=item.id,
        payout_per_sec=item.total_payout_wei_per_sec,
        operator_count=item.operator_count,
        max_operators=item.max_operators,
        remaining_wei=item.remaining_wei,
        stream_id=item.stream.id if item.stream else None,
        min_operators=item.min_operators,
    )


def listing_from_graph(item: GraphSponsorship) -> SponsorshipListing:
    return SponsorshipListing(
        id=item.id,
        stream_id=item.stream.id if item.stream else item.id,
        payout_per_sec=item.total_payout_wei_per_sec,
        operator_count=item.operator_count,
        max_operators=item.max_operators,
        spot_apy=item.spot_apy,
        remaining_wei=item.remaining_wei,
    )


class _SubgraphQueries(ABC):
    """Query methods shared by the live and fixture-backed subgraph providers."""

    request_factory: GraphRequestFactory

    @abstractmethod
    async def _execute(self, spec: GraphQLSpec) -> Dict[str, Any]:
        ...

    async def get_min_stake_per_sponsorship(self) -> int:
        data = await self._execute(self.request_factory.build_network_request())
        network = _validate_model(data, NetworkData, "network").network
        return network.minimum_stake_wei if network else 0

    async def get_current_stakes(self, operator_id: str) -> Dict[str, int]:
        data = await self._execute(self.request_factory.build_stakes_request(operator_id))
        stakes = _validate_model(data, StakesData, "stakes").stakes
        return {stake.sponsorship.id: stake.amount_wei for stake in stakes}

    async def get_operator_balance(self, operator_id: str) -> OperatorBalance:
        data = await self._execute(self.request_factory.build_operator_request(operator_id))
        operator = _validate_model(data, OperatorData, "operator").operator
        if operator is None:
            return OperatorBalance()
        return OperatorBalance(
            value_without_earnings=operator.value_without_earnings,
            staked_amount=sum(stake.amount_wei for stake in operator.stakes),
        )

    async def get_undelegation_queue_amount(self, operator_id: str) -> int:
        data = await self._execute(self.request_factory.build_queue_entries_request(operator_id))
        entries = _validate_model(data, QueueEntriesData, "queue_entries").queue_entries
        return sum(entry.amount for entry in entries)

    async def get_stakeable_sponsorships(
        self, max_acceptable_min_operator_count: int, now_ts: int
    ) -> List[StakeableSponsorship]:
        spec = self.request_factory.build_stakeable_sponsorships_request(now_ts, max_acceptable_min_operator_count)
        data = await self._execute(spec)
        items = _validate_model(data, SponsorshipsData, "sponsorships").sponsorships
        return [sponsorship_from_graph(item) for item in items]

    async def get_all_sponsorships(self, now_ts: int) -> List[SponsorshipListing]:
        data = await self._execute(self.request_factory.build_all_sponsorships_request(now_ts))
        items = _validate_model(data, SponsorshipsData, "sponsorships").sponsorships
        return [listing_from_graph(item) for item in items]


class GraphProvider(_SubgraphQueries):
    def __init__(self, settings: GraphSettings, http_client: Optional[GraphHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = GraphRequestFactory(
            api_key=settings.api_key,
            subgraph_id=settings.subgraph_id,
            gateway_url=settings.gateway_url,
        )
        self._client = http_client or GraphHttpClient()
        self._owns_client = http_client is None

    async def __aenter__(self) -> "GraphProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def _execute(self, spec: GraphQLSpec) -> Dict[str, Any]:
        payload = await self._client.request(spec)
        return unwrap_graph_response(payload, spec.operation_name)


FIXTURE_FILES = {
    "NetworkMinimumStake": "network.json",
    "StakeableSponsorships": "stakeable_sponsorships.json",
    "AllSponsorships": "all_sponsorships.json",
    "OperatorValue": "operator.json",
    "OperatorStakes": "stakes.json",
    "UndelegationQueue": "queue_entries.json",
}


class MockGraphProvider(_SubgraphQueries):
    def __init__(self, fixture_dir: Optional[Path] = None) -> None:
        self.fixture_dir = fixture_dir or repo_root() / "tests" / "fixtures" / "graph"
        self.request_factory = GraphRequestFactory(api_key="", subgraph_id="offline", gateway_url="http://offline")
        self.requests: List[GraphQLSpec] = []

    async def _execute(self, spec: GraphQLSpec) -> Dict[str, Any]:
        self.requests.append(spec)
        name = FIXTURE_FILES.get(spec.operation_name)
        if name is None:
            raise UpstreamBadResponse(f"No offline fixture for {spec.operation_name}")
        return unwrap_graph_response(load_fixture(self.fixture_dir, name), spec.operation_name)


def get_query_provider(settings: Optional[GraphSettings] = None, fixture_dir: Optional[Path] = None):
    cfg = settings or GraphSettings.from_env()
    if cfg.live:
        return GraphProvider(cfg)
    return MockGraphProvider(fixture_dir=fixture_dir)


__all__ = [
    "CircuitBreakerOpen",
    "GraphHttpClient",
    "GraphProvider",
    "GraphSettings",
    "MockGraphProvider",
    "get_query_provider",
    "listing_from_graph",
    "sponsorship_from_graph",
    "unwrap_graph_response",
]
