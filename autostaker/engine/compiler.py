from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Collection, Dict, List, Mapping, Optional

from autostaker.engine.types import ACTION_STAKE, ACTION_UNSTAKE, Action, TargetAllocation, unstakes_first


@dataclass
class Adjustment:
    sponsorship_id: str
    difference: int
    current_stake: int
    target_stake: int


def compute_adjustments(current_stakes: Mapping[str, int], targets: TargetAllocation) -> List[Adjustment]:
    adjustments = []
    for sponsorship_id, target in targets.items():
        current = current_stakes.get(sponsorship_id, 0)
        difference = target - current
        if difference != 0:
            adjustments.append(Adjustment(sponsorship_id, difference, current, target))
    return adjustments


def drop_small_adjustments(
    adjustments: List[Adjustment],
    min_transaction_amount: int,
    stakeable_ids: Collection[str],
) -> List[Adjustment]:
    # Expired sponsorships are always unwound, however small the stake.
    return [
        adj
        for adj in adjustments
        if abs(adj.difference) >= min_transaction_amount or adj.sponsorship_id not in stakeable_ids
    ]


def staking_excess(adjustments: List[Adjustment], free_balance: int, undelegation_queue_amount: int) -> int:
    staking_sum = sum(adj.difference for adj in adjustments if adj.difference > 0)
    unstaking_sum = -sum(adj.difference for adj in adjustments if adj.difference < 0)
    available_sum = unstaking_sum + free_balance - undelegation_queue_amount
    return staking_sum - available_sum


def reduce_excess(
    adjustments: List[Adjustment],
    current_stakes: Mapping[str, int],
    free_balance: int,
    undelegation_queue_amount: int,
    min_transaction_amount: int,
    min_stake_per_sponsorship: int,
) -> List[Adjustment]:
    """Shrink or drop staking adjustments until they fit in the available funds.

    Dropping small deltas can leave more staking than unstaking can fund.
    Each pass either removes the smallest staking (when the reducible
    allowance cannot cover the excess) or trims stakings greedily and stops.
    """
    adjustments = [replace(adj) for adj in adjustments]
    while True:
        stakings = [adj for adj in adjustments if adj.difference > 0]
        excess = staking_excess(adjustments, free_balance, undelegation_queue_amount)
        if excess <= 0 or not stakings:
            return adjustments

        allowances: Dict[str, int] = {}
        for adj in stakings:
            floor = max(min_transaction_amount, 0 if adj.sponsorship_id in current_stakes else min_stake_per_sponsorship)
            allowances[adj.sponsorship_id] = max(adj.difference - floor, 0)

        if excess > sum(allowances.values()):
            smallest = min(stakings, key=lambda adj: adj.difference)
            adjustments = [adj for adj in adjustments if adj is not smallest]
            continue

        for adj in stakings:
            allowance = allowances[adj.sponsorship_id]
            if allowance <= 0:
                continue
            reduction = min(allowance, excess)
            adj.difference -= reduction
            excess -= reduction
            if excess <= 0:
                break
        return adjustments


def to_action(adj: Adjustment) -> Optional[Action]:
    if adj.difference < 0:
        safe_target = 0 if adj.target_stake > adj.current_stake else adj.target_stake
        amount = adj.current_stake - safe_target
        if amount <= 0 or safe_target >= adj.current_stake:
            return None
        return Action(
            type=ACTION_UNSTAKE,
            sponsorship_id=adj.sponsorship_id,
            amount=amount,
            target_stake=safe_target,
            current_stake=adj.current_stake,
        )
    if adj.difference == 0:
        return None
    return Action(
        type=ACTION_STAKE,
        sponsorship_id=adj.sponsorship_id,
        amount=adj.difference,
        target_stake=adj.current_stake + adj.difference,
        current_stake=adj.current_stake,
    )


def compile_actions(
    current_stakes: Mapping[str, int],
    targets: TargetAllocation,
    free_balance: int,
    undelegation_queue_amount: int,
    min_transaction_amount: int,
    min_stake_per_sponsorship: int,
    stakeable_ids: Collection[str],
) -> List[Action]:
    adjustments = compute_adjustments(current_stakes, targets)
    adjustments = drop_small_adjustments(adjustments, min_transaction_amount, stakeable_ids)
    adjustments = reduce_excess(
        adjustments,
        current_stakes,
        free_balance,
        undelegation_queue_amount,
        min_transaction_amount,
        min_stake_per_sponsorship,
    )
    actions = [action for action in (to_action(adj) for adj in adjustments) if action is not None]
    return unstakes_first(actions)


__all__ = [
    "Adjustment",
    "compile_actions",
    "compute_adjustments",
    "drop_small_adjustments",
    "reduce_excess",
    "staking_excess",
    "to_action",
]
