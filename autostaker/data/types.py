from __future__ import annotations

from typing import Dict, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict


class StakeableSponsorship(BaseModel):
    id: str
    payout_per_sec: int
    operator_count: int = 0
    max_operators: Optional[int] = None
    remaining_wei: int = 0
    stream_id: Optional[str] = None
    min_operators: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        return self.stream_id or self.id

    def has_capacity(self) -> bool:
        return self.max_operators is None or self.operator_count < self.max_operators


class OperatorBalance(BaseModel):
    value_without_earnings: int = 0
    staked_amount: int = 0

    @property
    def free_balance(self) -> int:
        return max(0, self.value_without_earnings - self.staked_amount)


class SponsorshipListing(BaseModel):
    id: str
    stream_id: str
    payout_per_sec: int
    operator_count: int
    max_operators: Optional[int] = None
    spot_apy: Optional[float] = None
    remaining_wei: int = 0
    current_stake: int = 0
    is_staked: bool = False
    is_excluded: bool = False


def filter_stakeable(
    sponsorships: Iterable[StakeableSponsorship],
    current_stakes: Dict[str, int],
    excluded: Optional[Set[str]] = None,
) -> Dict[str, StakeableSponsorship]:
    """Apply capacity and exclusion rules to indexer results, keeping query order.

    Sponsorships the operator is already staked into bypass both checks so they
    are not treated as expired.
    """
    excluded_ids = {item.lower() for item in (excluded or set())}
    result: Dict[str, StakeableSponsorship] = {}
    for sponsorship in sponsorships:
        staked = sponsorship.id in current_stakes
        if not staked and sponsorship.id.lower() in excluded_ids:
            continue
        if staked or sponsorship.has_capacity():
            result[sponsorship.id] = sponsorship
    return result


__all__ = [
    "OperatorBalance",
    "SponsorshipListing",
    "StakeableSponsorship",
    "filter_stakeable",
]
