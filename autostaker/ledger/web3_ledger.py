from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from autostaker.core.exceptions import ConfirmationTimeout, LedgerError, LedgerReverted, ProviderMisconfigured
from autostaker.ledger.base import TxReceipt

DEFAULT_POLYGON_RPC_URL = "https://polygon-rpc.com"

MIN_PRIORITY_FEE_GWEI = 30
MIN_MAX_FEE_GWEI = 100
DEFAULT_CONFIRMATION_TIMEOUT_SEC = 180.0

# requests transport errors derive from OSError
LEDGER_CALL_ERRORS = (Web3Exception, OSError)

OPERATOR_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "sponsorship", "type": "address"},
            {"internalType": "uint256", "name": "amountWei", "type": "uint256"},
        ],
        "name": "stake",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "sponsorship", "type": "address"},
            {"internalType": "uint256", "name": "targetStakeWei", "type": "uint256"},
        ],
        "name": "reduceStakeTo",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "maxIterations", "type": "uint256"}],
        "name": "payOutQueue",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address[]", "name": "sponsorshipAddresses", "type": "address[]"}],
        "name": "withdrawEarningsFromSponsorships",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "sponsorship", "type": "address"}],
        "name": "stakedInto",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "queueIsEmpty",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "valueWithoutEarnings",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

SPONSORSHIP_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [{"internalType": "address", "name": "operator", "type": "address"}],
        "name": "minimumStakeOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "operator", "type": "address"}],
        "name": "lockedStakeWei",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def _error_text(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


@dataclass(frozen=True)
class LedgerSettings:
    private_key: str
    rpc_url: str

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        private_key = os.getenv("OPERATOR_PRIVATE_KEY", "").strip()
        rpc_url = os.getenv("POLYGON_RPC_URL", DEFAULT_POLYGON_RPC_URL).strip()
        if not private_key:
            raise ProviderMisconfigured("OPERATOR_PRIVATE_KEY is required for live execution")
        if not rpc_url:
            raise ProviderMisconfigured("POLYGON_RPC_URL must not be empty")
        return cls(private_key=private_key, rpc_url=rpc_url)


class Web3PendingTransaction:
    def __init__(self, w3: Web3, tx_hash: str, timeout_sec: float = DEFAULT_CONFIRMATION_TIMEOUT_SEC) -> None:
        self._w3 = w3
        self.tx_hash = tx_hash
        self.timeout_sec = timeout_sec

    async def wait(self, timeout_sec: Optional[float] = None) -> TxReceipt:
        timeout = self.timeout_sec if timeout_sec is None else timeout_sec
        try:
            receipt = await asyncio.to_thread(self._w3.eth.wait_for_transaction_receipt, self.tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise ConfirmationTimeout(self.tx_hash, timeout) from exc
        except LEDGER_CALL_ERRORS as exc:
            raise LedgerError(_error_text(exc)) from exc
        result = TxReceipt(
            tx_hash=self.tx_hash,
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )
        if not result.succeeded:
            raise LedgerReverted(f"execution reverted (tx {self.tx_hash})")
        return result


class Web3OperatorLedger:
    """Operator contract access through web3.py, signing locally with the operator owner's key.

    Node and contract failures surface as ``LedgerError`` with the node's
    message preserved, so revert reasons still drive retry classification.
    """

    def __init__(self, settings: LedgerSettings, operator_id: str, w3: Optional[Web3] = None) -> None:
        self.settings = settings
        self.w3 = w3 or Web3(Web3.HTTPProvider(settings.rpc_url))
        self.account = self.w3.eth.account.from_key(settings.private_key)
        self.operator_address = Web3.to_checksum_address(operator_id)
        self.operator = self.w3.eth.contract(address=self.operator_address, abi=OPERATOR_ABI)

    def _sponsorship(self, sponsorship_id: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(sponsorship_id), abi=SPONSORSHIP_ABI)

    def _gas_settings(self) -> Dict[str, int]:
        min_priority = Web3.to_wei(MIN_PRIORITY_FEE_GWEI, "gwei")
        min_max_fee = Web3.to_wei(MIN_MAX_FEE_GWEI, "gwei")
        priority = max(int(self.w3.eth.max_priority_fee), min_priority)
        base_fee = int(self.w3.eth.get_block("latest").get("baseFeePerGas", 0))
        return {
            "maxPriorityFeePerGas": priority,
            "maxFeePerGas": max(base_fee * 2 + priority, min_max_fee),
        }

    def _send(self, function) -> str:
        tx = function.build_transaction(
            {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                **self._gas_settings(),
            }
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def _in_thread(self, fn, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except LEDGER_CALL_ERRORS as exc:
            raise LedgerError(_error_text(exc)) from exc

    async def _submit(self, function) -> Web3PendingTransaction:
        tx_hash = await self._in_thread(self._send, function)
        return Web3PendingTransaction(self.w3, tx_hash)

    async def stake(self, sponsorship_id: str, amount_wei: int) -> Web3PendingTransaction:
        sponsorship = Web3.to_checksum_address(sponsorship_id)
        return await self._submit(self.operator.functions.stake(sponsorship, int(amount_wei)))

    async def reduce_stake_to(self, sponsorship_id: str, target_stake_wei: int) -> Web3PendingTransaction:
        sponsorship = Web3.to_checksum_address(sponsorship_id)
        return await self._submit(self.operator.functions.reduceStakeTo(sponsorship, int(target_stake_wei)))

    async def pay_out_queue(self, max_iterations: int = 0) -> Web3PendingTransaction:
        return await self._submit(self.operator.functions.payOutQueue(int(max_iterations)))

    async def withdraw_earnings(self, sponsorship_ids: List[str]) -> Web3PendingTransaction:
        addresses = [Web3.to_checksum_address(item) for item in sponsorship_ids]
        return await self._submit(self.operator.functions.withdrawEarningsFromSponsorships(addresses))

    async def staked_into(self, sponsorship_id: str) -> int:
        call = self.operator.functions.stakedInto(Web3.to_checksum_address(sponsorship_id)).call
        return int(await self._in_thread(call))

    async def minimum_stake_of(self, sponsorship_id: str) -> int:
        call = self._sponsorship(sponsorship_id).functions.minimumStakeOf(self.operator_address).call
        return int(await self._in_thread(call))

    async def locked_stake_wei(self, sponsorship_id: str) -> int:
        call = self._sponsorship(sponsorship_id).functions.lockedStakeWei(self.operator_address).call
        return int(await self._in_thread(call))

    async def queue_is_empty(self) -> bool:
        return bool(await self._in_thread(self.operator.functions.queueIsEmpty().call))

    async def value_without_earnings(self) -> int:
        return int(await self._in_thread(self.operator.functions.valueWithoutEarnings().call))


__all__ = [
    "DEFAULT_POLYGON_RPC_URL",
    "LedgerSettings",
    "OPERATOR_ABI",
    "SPONSORSHIP_ABI",
    "Web3OperatorLedger",
    "Web3PendingTransaction",
]
