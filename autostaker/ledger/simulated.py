from __future__ import annotations

import asyncio
import hashlib
import json
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

from autostaker.core.exceptions import LedgerError, LedgerReverted
from autostaker.data.types import OperatorBalance, SponsorshipListing, StakeableSponsorship
from autostaker.ledger.base import TxReceipt


@dataclass
class SimulatedChain:
    """In-memory operator state shared by the simulated ledger and query view."""

    operator_id: str
    free_funds: int = 0
    stakes: Dict[str, int] = field(default_factory=dict)
    queue: List[int] = field(default_factory=list)
    min_stake: int = 0
    locked: Dict[str, int] = field(default_factory=dict)
    earnings: Dict[str, int] = field(default_factory=dict)
    sponsorships: List[StakeableSponsorship] = field(default_factory=list)
    transactions: List[Dict[str, object]] = field(default_factory=list)
    block_number: int = 0

    @property
    def queue_total(self) -> int:
        return sum(self.queue)

    @property
    def staked_total(self) -> int:
        return sum(self.stakes.values())

    def record(self, method: str, **params: object) -> str:
        self.block_number += 1
        digest = json.dumps({"method": method, "params": params, "n": self.block_number}, sort_keys=True, default=str)
        tx_hash = "0x" + hashlib.sha256(digest.encode("utf-8")).hexdigest()
        self.transactions.append({"tx_hash": tx_hash, "method": method, **params})
        return tx_hash

    @classmethod
    async def from_query(cls, query, operator_id: str, max_acceptable_min_operator_count: int, now_ts: int) -> "SimulatedChain":
        min_stake, stakes, balance, queue_amount, sponsorships = await asyncio.gather(
            query.get_min_stake_per_sponsorship(),
            query.get_current_stakes(operator_id),
            query.get_operator_balance(operator_id),
            query.get_undelegation_queue_amount(operator_id),
            query.get_stakeable_sponsorships(max_acceptable_min_operator_count, now_ts),
        )
        return cls(
            operator_id=operator_id.lower(),
            free_funds=balance.free_balance,
            stakes=dict(stakes),
            queue=[queue_amount] if queue_amount else [],
            min_stake=min_stake,
            sponsorships=list(sponsorships),
        )


class SimulatedPending:
    def __init__(self, tx_hash: str, block_number: int, hang: bool = False) -> None:
        self.tx_hash = tx_hash
        self.block_number = block_number
        self.hang = hang

    async def wait(self, timeout_sec: Optional[float] = None) -> TxReceipt:
        if self.hang:
            await asyncio.Event().wait()
        return TxReceipt(tx_hash=self.tx_hash, status=1, block_number=self.block_number)


class _FailureScript:
    def __init__(self) -> None:
        self._failures: Dict[str, Deque[BaseException]] = {}
        self._hangs: Dict[str, int] = {}

    def fail_next(self, method: str, error: str | BaseException, times: int = 1) -> None:
        exc = error if isinstance(error, BaseException) else LedgerReverted(error)
        queue = self._failures.setdefault(method, deque())
        for _ in range(times):
            queue.append(exc)

    def hang_next(self, method: str) -> None:
        self._hangs[method] = self._hangs.get(method, 0) + 1

    def _raise_scripted(self, method: str) -> None:
        queue = self._failures.get(method)
        if queue:
            raise queue.popleft()

    def _take_hang(self, method: str) -> bool:
        remaining = self._hangs.get(method, 0)
        if remaining:
            self._hangs[method] = remaining - 1
            return True
        return False


class SimulatedLedger(_FailureScript):
    """Operator ledger that applies transactions to a ``SimulatedChain``.

    Reverts mirror the operator contract: staking is refused while the
    undelegation queue holds entries, and reductions below the sponsorship
    minimum are rejected. Scripted failures raise at submission time; a hung
    transaction never confirms and leaves the chain untouched.
    """

    def __init__(self, chain: SimulatedChain) -> None:
        super().__init__()
        self.chain = chain
        self.calls: List[Tuple[str, tuple]] = []

    def _submit(self, method: str, args: tuple) -> Optional[SimulatedPending]:
        self.calls.append((method, args))
        self._raise_scripted(method)
        if self._take_hang(method):
            tx_hash = self.chain.record(method, hung=True)
            return SimulatedPending(tx_hash, self.chain.block_number, hang=True)
        return None

    async def stake(self, sponsorship_id: str, amount_wei: int) -> SimulatedPending:
        pending = self._submit("stake", (sponsorship_id, amount_wei))
        if pending:
            return pending
        if self.chain.queue_total > 0:
            raise LedgerReverted("execution reverted: FirstEmptyQueueThenStake")
        if amount_wei > self.chain.free_funds:
            raise LedgerReverted("ERC20: transfer amount exceeds balance")
        self.chain.free_funds -= amount_wei
        self.chain.stakes[sponsorship_id] = self.chain.stakes.get(sponsorship_id, 0) + amount_wei
        tx_hash = self.chain.record("stake", sponsorship=sponsorship_id, amount=amount_wei)
        return SimulatedPending(tx_hash, self.chain.block_number)

    async def reduce_stake_to(self, sponsorship_id: str, target_stake_wei: int) -> SimulatedPending:
        pending = self._submit("reduce_stake_to", (sponsorship_id, target_stake_wei))
        if pending:
            return pending
        current = self.chain.stakes.get(sponsorship_id, 0)
        if target_stake_wei == 0 and current == 0:
            raise LedgerReverted("execution reverted: ReduceStakeToZero")
        if target_stake_wei >= current:
            raise LedgerReverted("execution reverted")
        if 0 < target_stake_wei < self.chain.min_stake or target_stake_wei < self.chain.locked.get(sponsorship_id, 0):
            raise LedgerReverted("execution reverted: CannotUnstakeBelowMinimum")
        self.chain.free_funds += current - target_stake_wei
        if target_stake_wei == 0:
            self.chain.stakes.pop(sponsorship_id, None)
        else:
            self.chain.stakes[sponsorship_id] = target_stake_wei
        tx_hash = self.chain.record("reduce_stake_to", sponsorship=sponsorship_id, target=target_stake_wei)
        return SimulatedPending(tx_hash, self.chain.block_number)

    async def pay_out_queue(self, max_iterations: int = 0) -> SimulatedPending:
        pending = self._submit("pay_out_queue", (max_iterations,))
        if pending:
            return pending
        if not self.chain.queue:
            raise LedgerReverted("execution reverted: queueIsEmpty")
        if self.chain.free_funds <= 0:
            raise LedgerReverted("execution reverted: insufficient balance")
        paid = 0
        iterations = 0
        while self.chain.queue and self.chain.free_funds > 0:
            if max_iterations and iterations >= max_iterations:
                break
            amount = min(self.chain.queue[0], self.chain.free_funds)
            self.chain.free_funds -= amount
            paid += amount
            if amount == self.chain.queue[0]:
                self.chain.queue.pop(0)
            else:
                self.chain.queue[0] -= amount
            iterations += 1
        tx_hash = self.chain.record("pay_out_queue", paid=paid)
        return SimulatedPending(tx_hash, self.chain.block_number)

    async def withdraw_earnings(self, sponsorship_ids: List[str]) -> SimulatedPending:
        pending = self._submit("withdraw_earnings", (tuple(sponsorship_ids),))
        if pending:
            return pending
        collected = 0
        for sponsorship_id in sponsorship_ids:
            collected += self.chain.earnings.pop(sponsorship_id, 0)
        self.chain.free_funds += collected
        tx_hash = self.chain.record("withdraw_earnings", sponsorships=list(sponsorship_ids), collected=collected)
        return SimulatedPending(tx_hash, self.chain.block_number)

    async def staked_into(self, sponsorship_id: str) -> int:
        self._raise_scripted("staked_into")
        return self.chain.stakes.get(sponsorship_id, 0)

    async def minimum_stake_of(self, sponsorship_id: str) -> int:
        self._raise_scripted("minimum_stake_of")
        return self.chain.min_stake

    async def locked_stake_wei(self, sponsorship_id: str) -> int:
        self._raise_scripted("locked_stake_wei")
        return self.chain.locked.get(sponsorship_id, 0)

    async def queue_is_empty(self) -> bool:
        self._raise_scripted("queue_is_empty")
        return not self.chain.queue

    async def value_without_earnings(self) -> int:
        self._raise_scripted("value_without_earnings")
        return self.chain.free_funds + self.chain.staked_total

    def mutations(self) -> List[str]:
        return [method for method, _ in self.calls]


class SimulatedQueryProvider(_FailureScript):
    """Indexer view over a ``SimulatedChain``; always reflects the latest state."""

    def __init__(self, chain: SimulatedChain) -> None:
        super().__init__()
        self.chain = chain
        self.calls: List[str] = []

    def _read(self, method: str) -> None:
        self.calls.append(method)
        self._raise_scripted(method)

    async def get_min_stake_per_sponsorship(self) -> int:
        self._read("get_min_stake_per_sponsorship")
        return self.chain.min_stake

    async def get_current_stakes(self, operator_id: str) -> Dict[str, int]:
        self._read("get_current_stakes")
        return {key: value for key, value in self.chain.stakes.items() if value > 0}

    async def get_operator_balance(self, operator_id: str) -> OperatorBalance:
        self._read("get_operator_balance")
        staked = self.chain.staked_total
        return OperatorBalance(value_without_earnings=self.chain.free_funds + staked, staked_amount=staked)

    async def get_undelegation_queue_amount(self, operator_id: str) -> int:
        self._read("get_undelegation_queue_amount")
        return self.chain.queue_total

    async def get_stakeable_sponsorships(
        self, max_acceptable_min_operator_count: int, now_ts: int
    ) -> List[StakeableSponsorship]:
        self._read("get_stakeable_sponsorships")
        return [
            item
            for item in self.chain.sponsorships
            if item.min_operators is None or item.min_operators <= max_acceptable_min_operator_count
        ]

    async def get_all_sponsorships(self, now_ts: int) -> List[SponsorshipListing]:
        self._read("get_all_sponsorships")
        return [
            SponsorshipListing(
                id=item.id,
                stream_id=item.label,
                payout_per_sec=item.payout_per_sec,
                operator_count=item.operator_count,
                max_operators=item.max_operators,
                remaining_wei=item.remaining_wei,
            )
            for item in self.chain.sponsorships
        ]


__all__ = ["SimulatedChain", "SimulatedLedger", "SimulatedPending", "SimulatedQueryProvider"]
