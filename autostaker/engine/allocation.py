"""Target stake computation.

Every function here is pure: the same stakes, balances, sponsorships and
operator id always produce the same targets, so operators running the same
code converge without talking to each other.
"""
from __future__ import annotations

from typing import Dict, List, Mapping

from autostaker.data.types import StakeableSponsorship
from autostaker.engine.types import TargetAllocation

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619


def tie_break_hash(value: str) -> int:
    """32-bit FNV-1a over the code points of ``value``."""
    digest = FNV_OFFSET_BASIS
    for char in value:
        digest ^= ord(char)
        digest = (digest * FNV_PRIME) & 0xFFFFFFFF
    return digest


def total_stakeable_amount(current_stakes: Mapping[str, int], free_balance: int, undelegation_queue_amount: int) -> int:
    return max(0, sum(current_stakes.values()) + free_balance - undelegation_queue_amount)


def expired_sponsorships(current_stakes: Mapping[str, int], sponsorships: Mapping[str, StakeableSponsorship]) -> List[str]:
    return [sponsorship_id for sponsorship_id in current_stakes if sponsorship_id not in sponsorships]


def selection_count(
    candidate_count: int,
    total_stakeable: int,
    max_sponsorship_count: int,
    min_stake_per_sponsorship: int,
) -> int:
    count = min(candidate_count, max_sponsorship_count)
    if min_stake_per_sponsorship > 0:
        count = min(count, total_stakeable // min_stake_per_sponsorship)
    return count


def select_sponsorships(
    current_stakes: Mapping[str, int],
    sponsorships: Mapping[str, StakeableSponsorship],
    total_stakeable: int,
    operator_id: str,
    max_sponsorship_count: int,
    min_stake_per_sponsorship: int,
) -> List[str]:
    count = selection_count(len(sponsorships), total_stakeable, max_sponsorship_count, min_stake_per_sponsorship)
    if count <= 0:
        return []

    kept = [sponsorship_id for sponsorship_id in sponsorships if sponsorship_id in current_stakes]
    potential = [sponsorship_id for sponsorship_id in sponsorships if sponsorship_id not in current_stakes]
    potential.sort(
        key=lambda sponsorship_id: (
            -sponsorships[sponsorship_id].payout_per_sec,
            tie_break_hash(operator_id + sponsorship_id),
        )
    )
    return (kept + potential)[:count]


def compute_targets(
    current_stakes: Mapping[str, int],
    free_balance: int,
    sponsorships: Mapping[str, StakeableSponsorship],
    undelegation_queue_amount: int,
    min_stake_per_sponsorship: int,
    operator_id: str,
    max_sponsorship_count: int,
) -> TargetAllocation:
    total_stakeable = total_stakeable_amount(current_stakes, free_balance, undelegation_queue_amount)
    selected = select_sponsorships(
        current_stakes,
        sponsorships,
        total_stakeable,
        operator_id,
        max_sponsorship_count,
        min_stake_per_sponsorship,
    )

    targets: Dict[str, int] = {}
    if not selected:
        for sponsorship_id in expired_sponsorships(current_stakes, sponsorships):
            targets[sponsorship_id] = 0
        return targets

    payout_proportional_amount = max(0, total_stakeable - min_stake_per_sponsorship * len(selected))
    payout_sum = sum(sponsorships[sponsorship_id].payout_per_sec for sponsorship_id in selected)

    for sponsorship_id in selected:
        proportional = 0
        if payout_sum > 0:
            proportional = payout_proportional_amount * sponsorships[sponsorship_id].payout_per_sec // payout_sum
        targets[sponsorship_id] = min_stake_per_sponsorship + proportional

    for sponsorship_id in current_stakes:
        if sponsorship_id not in targets:
            targets[sponsorship_id] = 0

    return targets


__all__ = [
    "compute_targets",
    "expired_sponsorships",
    "select_sponsorships",
    "selection_count",
    "tie_break_hash",
    "total_stakeable_amount",
]
