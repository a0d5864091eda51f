from __future__ import annotations

from typing import Mapping, Optional

from autostaker.engine.types import ACTION_UNSTAKE, Action

SAFETY_BUFFER_DIVISOR = 100


def plan_queue_payment(
    current_stakes: Mapping[str, int],
    amount_needed: int,
    min_stake_per_sponsorship: int,
) -> Optional[Action]:
    """Pick one sponsorship to partially unstake so the undelegation queue can be paid.

    Returns ``None`` when no stake sits above the protocol minimum. When no
    single surplus covers the shortfall the best candidate is drained to the
    minimum and the action is flagged ``partial_payment``.
    """
    if amount_needed <= 0:
        return None

    candidates = [
        (sponsorship_id, stake, stake - min_stake_per_sponsorship)
        for sponsorship_id, stake in current_stakes.items()
        if stake > min_stake_per_sponsorship
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda item: item[2], reverse=True)

    for sponsorship_id, stake, surplus in candidates:
        if surplus >= amount_needed:
            unstake_amount = min(amount_needed + amount_needed // SAFETY_BUFFER_DIVISOR, surplus)
            return Action(
                type=ACTION_UNSTAKE,
                sponsorship_id=sponsorship_id,
                amount=unstake_amount,
                target_stake=stake - unstake_amount,
                current_stake=stake,
                is_queue_payment=True,
            )

    sponsorship_id, stake, surplus = candidates[0]
    return Action(
        type=ACTION_UNSTAKE,
        sponsorship_id=sponsorship_id,
        amount=surplus,
        target_stake=min_stake_per_sponsorship,
        current_stake=stake,
        is_queue_payment=True,
        partial_payment=True,
    )


__all__ = ["plan_queue_payment"]
