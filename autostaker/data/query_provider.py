from __future__ import annotations

from typing import Dict, List, Protocol

from autostaker.data.types import OperatorBalance, SponsorshipListing, StakeableSponsorship


class LedgerQueryProvider(Protocol):
    async def get_min_stake_per_sponsorship(self) -> int:
        ...

    async def get_current_stakes(self, operator_id: str) -> Dict[str, int]:
        ...

    async def get_operator_balance(self, operator_id: str) -> OperatorBalance:
        ...

    async def get_undelegation_queue_amount(self, operator_id: str) -> int:
        ...

    async def get_stakeable_sponsorships(
        self, max_acceptable_min_operator_count: int, now_ts: int
    ) -> List[StakeableSponsorship]:
        ...

    async def get_all_sponsorships(self, now_ts: int) -> List[SponsorshipListing]:
        ...


__all__ = ["LedgerQueryProvider"]
