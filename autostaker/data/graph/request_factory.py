from __future__ import annotations

from typing import Any, Dict

from autostaker.core.request_spec import GraphQLSpec

MIN_SPONSORSHIP_TOTAL_PAYOUT_PER_SECOND = 10**12
MIN_SPONSORSHIP_BALANCE_WEI = 15 * 10**18
NETWORK_ENTITY_ID = "network-entity-id"
PAGE_SIZE = 1000
DISPLAY_PAGE_SIZE = 500

NETWORK_QUERY = """
query NetworkMinimumStake($id: ID!) {
  network(id: $id) {
    minimumStakeWei
  }
}
"""

STAKEABLE_SPONSORSHIPS_QUERY = """
query StakeableSponsorships($now: BigInt!, $maxMinOperators: Int!, $minPayout: BigInt!, $minRemaining: BigInt!, $first: Int!) {
  sponsorships(
    where: {
      isRunning: true
      projectedInsolvency_gt: $now
      minimumStakingPeriodSeconds: "0"
      minOperators_lte: $maxMinOperators
      totalPayoutWeiPerSec_gte: $minPayout
      remainingWei_gte: $minRemaining
    }
    first: $first
    orderBy: totalPayoutWeiPerSec
    orderDirection: desc
  ) {
    id
    totalPayoutWeiPerSec
    operatorCount
    maxOperators
    minOperators
    remainingWei
    stream { id }
  }
}
"""

ALL_SPONSORSHIPS_QUERY = """
query AllSponsorships($now: BigInt!, $minPayout: BigInt!, $minRemaining: BigInt!, $first: Int!) {
  sponsorships(
    where: {
      isRunning: true
      projectedInsolvency_gt: $now
      totalPayoutWeiPerSec_gte: $minPayout
      remainingWei_gte: $minRemaining
    }
    first: $first
    orderBy: totalPayoutWeiPerSec
    orderDirection: desc
  ) {
    id
    totalPayoutWeiPerSec
    operatorCount
    maxOperators
    spotAPY
    remainingWei
    stream { id }
  }
}
"""

OPERATOR_QUERY = """
query OperatorValue($id: ID!) {
  operator(id: $id) {
    id
    valueWithoutEarnings
    stakes {
      amountWei
    }
  }
}
"""

STAKES_QUERY = """
query OperatorStakes($operator: String!, $first: Int!) {
  stakes(where: { operator: $operator }, first: $first) {
    id
    sponsorship { id }
    amountWei
  }
}
"""

QUEUE_ENTRIES_QUERY = """
query UndelegationQueue($operator: String!, $first: Int!) {
  queueEntries(where: { operator: $operator }, first: $first) {
    id
    amount
  }
}
"""


class GraphRequestFactory:
    def __init__(
        self,
        api_key: str,
        subgraph_id: str,
        gateway_url: str = "https://gateway-arbitrum.network.thegraph.com",
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.subgraph_id = subgraph_id.strip()
        self.gateway_url = gateway_url.rstrip("/")

    @property
    def path(self) -> str:
        if self.api_key:
            return f"/api/{self.api_key}/subgraphs/id/{self.subgraph_id}"
        return f"/subgraphs/id/{self.subgraph_id}"

    def _spec(self, operation_name: str, document: str, variables: Dict[str, Any]) -> GraphQLSpec:
        return GraphQLSpec(
            base_url=self.gateway_url,
            path=self.path,
            operation_name=operation_name,
            document=document,
            variables=variables,
        )

    def build_network_request(self) -> GraphQLSpec:
        return self._spec("NetworkMinimumStake", NETWORK_QUERY, {"id": NETWORK_ENTITY_ID})

    def build_stakeable_sponsorships_request(self, now_ts: int, max_acceptable_min_operator_count: int) -> GraphQLSpec:
        variables = {
            "now": str(int(now_ts)),
            "maxMinOperators": int(max_acceptable_min_operator_count),
            "minPayout": str(MIN_SPONSORSHIP_TOTAL_PAYOUT_PER_SECOND),
            "minRemaining": str(MIN_SPONSORSHIP_BALANCE_WEI),
            "first": PAGE_SIZE,
        }
        return self._spec("StakeableSponsorships", STAKEABLE_SPONSORSHIPS_QUERY, variables)

    def build_all_sponsorships_request(self, now_ts: int) -> GraphQLSpec:
        variables = {
            "now": str(int(now_ts)),
            "minPayout": str(MIN_SPONSORSHIP_TOTAL_PAYOUT_PER_SECOND),
            "minRemaining": str(MIN_SPONSORSHIP_BALANCE_WEI),
            "first": DISPLAY_PAGE_SIZE,
        }
        return self._spec("AllSponsorships", ALL_SPONSORSHIPS_QUERY, variables)

    def build_operator_request(self, operator_id: str) -> GraphQLSpec:
        return self._spec("OperatorValue", OPERATOR_QUERY, {"id": operator_id.lower()})

    def build_stakes_request(self, operator_id: str) -> GraphQLSpec:
        return self._spec("OperatorStakes", STAKES_QUERY, {"operator": operator_id.lower(), "first": PAGE_SIZE})

    def build_queue_entries_request(self, operator_id: str) -> GraphQLSpec:
        return self._spec(
            "UndelegationQueue", QUEUE_ENTRIES_QUERY, {"operator": operator_id.lower(), "first": PAGE_SIZE}
        )


__all__ = [
    "GraphRequestFactory",
    "MIN_SPONSORSHIP_BALANCE_WEI",
    "MIN_SPONSORSHIP_TOTAL_PAYOUT_PER_SECOND",
    "NETWORK_ENTITY_ID",
]
