from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

ACTION_STAKE = "stake"
ACTION_UNSTAKE = "unstake"
ACTION_QUEUE_PAYOUT = "queue_payout"

TargetAllocation = Dict[str, int]


class Action(BaseModel):
    type: str
    sponsorship_id: str
    amount: int = Field(gt=0)
    target_stake: int = Field(ge=0)
    current_stake: int = Field(ge=0)
    is_queue_payment: bool = False
    partial_payment: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_stake(self) -> bool:
        return self.type == ACTION_STAKE

    @property
    def is_unstake(self) -> bool:
        return self.type == ACTION_UNSTAKE


def unstakes_first(actions: list[Action]) -> list[Action]:
    return [a for a in actions if a.is_unstake] + [a for a in actions if not a.is_unstake]


__all__ = [
    "ACTION_QUEUE_PAYOUT",
    "ACTION_STAKE",
    "ACTION_UNSTAKE",
    "Action",
    "TargetAllocation",
    "unstakes_first",
]
