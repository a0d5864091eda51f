from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autostaker.core.units import parse_wei


class GraphError(BaseModel):
    message: str

    model_config = ConfigDict(extra="allow")


class GraphResponse(BaseModel):
    data: Optional[Dict[str, Any]] = None
    errors: List[GraphError] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class _WeiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class GraphStream(BaseModel):
    id: str

    model_config = ConfigDict(extra="allow")


class GraphSponsorship(_WeiModel):
    id: str
    total_payout_wei_per_sec: int = Field(alias="totalPayoutWeiPerSec")
    operator_count: int = Field(default=0, alias="operatorCount")
    max_operators: Optional[int] = Field(default=None, alias="maxOperators")
    min_operators: Optional[int] = Field(default=None, alias="minOperators")
    remaining_wei: int = Field(default=0, alias="remainingWei")
    spot_apy: Optional[float] = Field(default=None, alias="spotAPY")
    stream: Optional[GraphStream] = None

    @field_validator("total_payout_wei_per_sec", "remaining_wei", mode="before")
    @classmethod
    def _wei(cls, value: Any) -> int:
        return parse_wei(value)


class GraphNetwork(_WeiModel):
    minimum_stake_wei: int = Field(default=0, alias="minimumStakeWei")

    @field_validator("minimum_stake_wei", mode="before")
    @classmethod
    def _wei(cls, value: Any) -> int:
        return parse_wei(value)


class GraphStakeAmount(_WeiModel):
    amount_wei: int = Field(default=0, alias="amountWei")

    @field_validator("amount_wei", mode="before")
    @classmethod
    def _wei(cls, value: Any) -> int:
        return parse_wei(value)


class GraphSponsorshipRef(BaseModel):
    id: str

    model_config = ConfigDict(extra="allow")


class GraphStake(GraphStakeAmount):
    id: str
    sponsorship: GraphSponsorshipRef


class GraphOperator(_WeiModel):
    id: str
    value_without_earnings: int = Field(default=0, alias="valueWithoutEarnings")
    stakes: List[GraphStakeAmount] = Field(default_factory=list)

    @field_validator("value_without_earnings", mode="before")
    @classmethod
    def _wei(cls, value: Any) -> int:
        return parse_wei(value)


class GraphQueueEntry(_WeiModel):
    id: str
    amount: int = 0

    @field_validator("amount", mode="before")
    @classmethod
    def _wei(cls, value: Any) -> int:
        return parse_wei(value)


class NetworkData(BaseModel):
    network: Optional[GraphNetwork] = None


class SponsorshipsData(BaseModel):
    sponsorships: List[GraphSponsorship] = Field(default_factory=list)


class OperatorData(BaseModel):
    operator: Optional[GraphOperator] = None


class StakesData(BaseModel):
    stakes: List[GraphStake] = Field(default_factory=list)


class QueueEntriesData(BaseModel):
    queue_entries: List[GraphQueueEntry] = Field(default_factory=list, alias="queueEntries")

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "GraphError",
    "GraphNetwork",
    "GraphOperator",
    "GraphQueueEntry",
    "GraphResponse",
    "GraphSponsorship",
    "GraphStake",
    "NetworkData",
    "OperatorData",
    "QueueEntriesData",
    "SponsorshipsData",
    "StakesData",
]
