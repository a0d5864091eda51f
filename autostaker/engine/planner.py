from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from autostaker.config import AutostakerConfig
from autostaker.core.units import wei_to_data
from autostaker.data.query_provider import LedgerQueryProvider
from autostaker.data.types import StakeableSponsorship, filter_stakeable
from autostaker.engine.allocation import compute_targets
from autostaker.engine.compiler import compile_actions
from autostaker.engine.queue_drain import plan_queue_payment
from autostaker.engine.types import Action, TargetAllocation

CANNOT_PAY_QUEUE = "Cannot pay undelegation queue - no sponsorship has enough stake above minimum to unstake"


@dataclass
class AnalysisResult:
    actions: List[Action]
    current_stakes: Dict[str, int]
    sponsorships: Dict[str, StakeableSponsorship]
    free_balance: int
    undelegation_queue_amount: int
    min_stake_per_sponsorship: int
    excluded_count: int = 0
    targets: TargetAllocation = field(default_factory=dict)
    is_queue_payment: bool = False
    queue_payment_amount: int = 0
    skipped_reason: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "current_stakes_total": wei_to_data(sum(self.current_stakes.values())),
            "free_balance": wei_to_data(self.free_balance),
            "undelegation_queue": wei_to_data(self.undelegation_queue_amount),
            "min_stake_per_sponsorship": wei_to_data(self.min_stake_per_sponsorship),
            "stakeable_sponsorships": len(self.sponsorships),
            "excluded": self.excluded_count,
            "actions": len(self.actions),
            "is_queue_payment": self.is_queue_payment,
            "skipped_reason": self.skipped_reason,
        }


async def _free_balance(query: LedgerQueryProvider, ledger, operator_id: str, current_stakes: Dict[str, int]) -> int:
    balance = await query.get_operator_balance(operator_id)
    free_balance = balance.free_balance
    if free_balance == 0 and ledger is not None:
        value = await ledger.value_without_earnings()
        staked = sum(current_stakes.values())
        free_balance = max(0, value - staked)
    return free_balance


async def analyze(
    query: LedgerQueryProvider,
    operator_id: str,
    config: AutostakerConfig,
    ledger=None,
    now_ts: Optional[int] = None,
    logger=None,
) -> AnalysisResult:
    """Query the current state of an operator and compile the actions that rebalance it.

    When the undelegation queue cannot be paid from free funds the normal
    allocation is bypassed and at most one queue-payment unstake is planned.
    """
    now = int(now_ts if now_ts is not None else time.time())
    min_stake, current_stakes, queue_amount, candidates = await asyncio.gather(
        query.get_min_stake_per_sponsorship(),
        query.get_current_stakes(operator_id),
        query.get_undelegation_queue_amount(operator_id),
        query.get_stakeable_sponsorships(config.max_acceptable_min_operator_count, now),
    )
    free_balance = await _free_balance(query, ledger, operator_id, current_stakes)
    excluded = set(config.excluded_sponsorships)
    sponsorships = filter_stakeable(candidates, current_stakes, excluded)
    excluded_count = sum(1 for item in candidates if item.id.lower() in excluded and item.id not in current_stakes)

    result = AnalysisResult(
        actions=[],
        current_stakes=current_stakes,
        sponsorships=sponsorships,
        free_balance=free_balance,
        undelegation_queue_amount=queue_amount,
        min_stake_per_sponsorship=min_stake,
        excluded_count=excluded_count,
    )

    if queue_amount > 0 and free_balance < queue_amount:
        shortfall = queue_amount - free_balance
        action = plan_queue_payment(current_stakes, shortfall, min_stake)
        result.queue_payment_amount = shortfall
        if action is None:
            result.skipped_reason = CANNOT_PAY_QUEUE
        else:
            result.actions = [action]
            result.is_queue_payment = True
    else:
        result.targets = compute_targets(
            current_stakes,
            free_balance,
            sponsorships,
            queue_amount,
            min_stake,
            operator_id,
            config.max_sponsorship_count,
        )
        result.actions = compile_actions(
            current_stakes,
            result.targets,
            free_balance,
            queue_amount,
            config.min_transaction_amount_wei,
            min_stake,
            set(sponsorships),
        )

    if logger is not None:
        logger.event("analysis", operator=operator_id, **result.summary())
    return result


__all__ = ["AnalysisResult", "CANNOT_PAY_QUEUE", "analyze"]
