from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mock_subgraph.data_seed import generate_seed

app = FastAPI()
seed = generate_seed()

app.state.seed = seed
app.state.faults = []

OPERATIONS = [
    "NetworkMinimumStake",
    "StakeableSponsorships",
    "AllSponsorships",
    "OperatorValue",
    "OperatorStakes",
    "UndelegationQueue",
]


def _empty_metrics() -> Dict[str, int]:
    return {name: 0 for name in OPERATIONS}


app.state.metrics = _empty_metrics()


def reset_metrics() -> None:
    app.state.metrics = _empty_metrics()
    app.state.faults = []


def inject_faults(*status_codes: int) -> None:
    app.state.faults.extend(status_codes)


class GraphQLRequest(BaseModel):
    query: str
    operation_name: Optional[str] = Field(default=None, alias="operationName")
    variables: Dict[str, Any] = Field(default_factory=dict)


def _public(item: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
    return {key: item[key] for key in fields if key in item}


def _live(item: Dict[str, Any], variables: Dict[str, Any]) -> bool:
    return (
        bool(item["isRunning"])
        and int(item["projectedInsolvency"]) > int(variables.get("now", 0))
        and int(item["totalPayoutWeiPerSec"]) >= int(variables.get("minPayout", 0))
        and int(item["remainingWei"]) >= int(variables.get("minRemaining", 0))
    )


def _sorted_page(items: List[Dict[str, Any]], first: int) -> List[Dict[str, Any]]:
    ordered = sorted(items, key=lambda item: int(item["totalPayoutWeiPerSec"]), reverse=True)
    return ordered[: max(0, first)]


def _stakeable_sponsorships(variables: Dict[str, Any]) -> Dict[str, Any]:
    max_min_operators = int(variables.get("maxMinOperators", 0))
    matches = [
        item
        for item in seed["sponsorships"]
        if _live(item, variables)
        and item["minimumStakingPeriodSeconds"] == "0"
        and int(item["minOperators"]) <= max_min_operators
    ]
    fields = ["id", "totalPayoutWeiPerSec", "operatorCount", "maxOperators", "minOperators", "remainingWei", "stream"]
    page = _sorted_page(matches, int(variables.get("first", 100)))
    return {"sponsorships": [_public(item, fields) for item in page]}


def _all_sponsorships(variables: Dict[str, Any]) -> Dict[str, Any]:
    matches = [item for item in seed["sponsorships"] if _live(item, variables)]
    fields = ["id", "totalPayoutWeiPerSec", "operatorCount", "maxOperators", "spotAPY", "remainingWei", "stream"]
    page = _sorted_page(matches, int(variables.get("first", 100)))
    return {"sponsorships": [_public(item, fields) for item in page]}


def _operator(variables: Dict[str, Any]) -> Dict[str, Any]:
    operator_id = str(variables.get("id", "")).lower()
    state = seed["operators"].get(operator_id)
    if state is None:
        return {"operator": None}
    staked = sum(state["stakes"].values())
    return {
        "operator": {
            "id": operator_id,
            "valueWithoutEarnings": str(state["free"] + staked),
            "stakes": [{"amountWei": str(amount)} for amount in state["stakes"].values()],
        }
    }


def _stakes(variables: Dict[str, Any]) -> Dict[str, Any]:
    operator_id = str(variables.get("operator", "")).lower()
    state = seed["operators"].get(operator_id) or {"stakes": {}}
    return {
        "stakes": [
            {"id": f"{sponsorship_id}-{operator_id}", "sponsorship": {"id": sponsorship_id}, "amountWei": str(amount)}
            for sponsorship_id, amount in state["stakes"].items()
        ]
    }


def _queue_entries(variables: Dict[str, Any]) -> Dict[str, Any]:
    operator_id = str(variables.get("operator", "")).lower()
    state = seed["operators"].get(operator_id) or {"queue": []}
    return {
        "queueEntries": [
            {"id": f"{operator_id}-{index}", "amount": str(amount)} for index, amount in enumerate(state["queue"])
        ]
    }


HANDLERS = {
    "NetworkMinimumStake": lambda variables: {"network": seed["network"]},
    "StakeableSponsorships": _stakeable_sponsorships,
    "AllSponsorships": _all_sponsorships,
    "OperatorValue": _operator,
    "OperatorStakes": _stakes,
    "UndelegationQueue": _queue_entries,
}


async def _handle(request: GraphQLRequest) -> Any:
    if app.state.faults:
        status = app.state.faults.pop(0)
        return JSONResponse(status_code=status, content={"error": f"injected {status}"})
    handler = HANDLERS.get(request.operation_name or "")
    if handler is None:
        return {"errors": [{"message": f"Unknown operation {request.operation_name!r}"}]}
    app.state.metrics[request.operation_name] += 1
    return {"data": handler(request.variables)}


@app.post("/subgraphs/id/{subgraph_id}")
async def subgraph_query(subgraph_id: str, request: GraphQLRequest) -> Any:
    return await _handle(request)


@app.post("/api/{api_key}/subgraphs/id/{subgraph_id}")
async def gateway_query(api_key: str, subgraph_id: str, request: GraphQLRequest) -> Any:
    return await _handle(request)
