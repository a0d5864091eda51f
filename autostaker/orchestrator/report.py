from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from autostaker.core.units import format_data
from autostaker.data.types import StakeableSponsorship
from autostaker.engine.types import ACTION_QUEUE_PAYOUT, Action

STATUS_NOTHING_TO_DO = "nothing_to_do"
STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_CANCELLED = "cancelled"

QUEUE_PAYOUT_DESCRIPTION = "Pay undelegation queue"
MAX_LABEL_LENGTH = 40


def describe_action(action: Action, sponsorships: Optional[Mapping[str, StakeableSponsorship]] = None) -> str:
    """Human-readable line such as ``Stake 1,234 DATA → 0xabc...``."""
    info = (sponsorships or {}).get(action.sponsorship_id)
    label = info.label if info is not None else action.sponsorship_id
    if len(label) > MAX_LABEL_LENGTH:
        label = label[: MAX_LABEL_LENGTH - 3] + "..."
    amount = format_data(action.amount)
    if action.is_stake:
        return f"Stake {amount} DATA → {label}"
    return f"Unstake {amount} DATA ← {label}"


class ActionOutcome(BaseModel):
    type: str
    sponsorship_id: Optional[str] = None
    amount: int = 0
    target_stake: Optional[int] = None
    description: str
    status: str
    tx_hash: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    retries: int = 0

    @classmethod
    def from_action(
        cls,
        action: Action,
        status: str,
        sponsorships: Optional[Mapping[str, StakeableSponsorship]] = None,
        **fields: Any,
    ) -> "ActionOutcome":
        return cls(
            type=action.type,
            sponsorship_id=action.sponsorship_id,
            amount=action.amount,
            target_stake=action.target_stake,
            description=describe_action(action, sponsorships),
            status=status,
            **fields,
        )

    @classmethod
    def queue_payout(cls, tx_hash: str) -> "ActionOutcome":
        return cls(type=ACTION_QUEUE_PAYOUT, description=QUEUE_PAYOUT_DESCRIPTION, status=OUTCOME_SUCCEEDED, tx_hash=tx_hash)

    def as_record(self) -> Dict[str, Any]:
        record = self.model_dump(exclude_none=True)
        record["amount"] = str(self.amount)
        if self.target_stake is not None:
            record["target_stake"] = str(self.target_stake)
        return record


class ExecutionReport(BaseModel):
    status: str = STATUS_NOTHING_TO_DO
    message: Optional[str] = None
    successful: List[ActionOutcome] = Field(default_factory=list)
    failed: List[ActionOutcome] = Field(default_factory=list)
    skipped: List[ActionOutcome] = Field(default_factory=list)
    cancelled: List[ActionOutcome] = Field(default_factory=list)
    recalculations: int = 0
    aborted: bool = False
    error_kind: Optional[str] = None

    def record(self, outcome: ActionOutcome) -> None:
        bucket = {
            OUTCOME_SUCCEEDED: self.successful,
            OUTCOME_FAILED: self.failed,
            OUTCOME_SKIPPED: self.skipped,
            OUTCOME_CANCELLED: self.cancelled,
        }[outcome.status]
        bucket.append(outcome)

    @property
    def success(self) -> bool:
        return self.status in {STATUS_SUCCESS, STATUS_NOTHING_TO_DO}

    def finalize(self) -> "ExecutionReport":
        if self.aborted or self.error_kind or (self.failed and not self.successful):
            self.status = STATUS_FAILED
        elif self.failed or self.cancelled:
            self.status = STATUS_PARTIAL
        elif self.successful or self.skipped:
            self.status = STATUS_SUCCESS
        else:
            self.status = STATUS_NOTHING_TO_DO
        return self

    def summary(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "error_kind": self.error_kind,
            "successful": len(self.successful),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "cancelled": len(self.cancelled),
            "recalculations": self.recalculations,
        }


__all__ = [
    "ActionOutcome",
    "ExecutionReport",
    "OUTCOME_CANCELLED",
    "OUTCOME_FAILED",
    "OUTCOME_SKIPPED",
    "OUTCOME_SUCCEEDED",
    "QUEUE_PAYOUT_DESCRIPTION",
    "STATUS_FAILED",
    "STATUS_NOTHING_TO_DO",
    "STATUS_PARTIAL",
    "STATUS_SUCCESS",
    "describe_action",
]
