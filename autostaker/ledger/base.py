from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    status: int = 1
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class PendingTransaction(Protocol):
    tx_hash: str

    async def wait(self, timeout_sec: Optional[float] = None) -> TxReceipt:
        ...


class OperatorLedger(Protocol):
    """Write and read access to one operator contract and its sponsorships.

    Mutating calls return once the transaction is submitted; callers must
    await ``wait()`` on the result before treating it as successful.
    """

    async def stake(self, sponsorship_id: str, amount_wei: int) -> PendingTransaction:
        ...

    async def reduce_stake_to(self, sponsorship_id: str, target_stake_wei: int) -> PendingTransaction:
        ...

    async def pay_out_queue(self, max_iterations: int = 0) -> PendingTransaction:
        ...

    async def withdraw_earnings(self, sponsorship_ids: List[str]) -> PendingTransaction:
        ...

    async def staked_into(self, sponsorship_id: str) -> int:
        ...

    async def minimum_stake_of(self, sponsorship_id: str) -> int:
        ...

    async def locked_stake_wei(self, sponsorship_id: str) -> int:
        ...

    async def queue_is_empty(self) -> bool:
        ...

    async def value_without_earnings(self) -> int:
        ...


__all__ = ["OperatorLedger", "PendingTransaction", "TxReceipt"]
