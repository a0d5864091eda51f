from __future__ import annotations

from dataclasses import dataclass

from autostaker.core.exceptions import ConfirmationTimeout

KIND_STALE_STATE = "STALE_STATE"
KIND_QUEUE_NOT_EMPTY = "QUEUE_NOT_EMPTY"
KIND_NOTHING_TO_REDUCE = "NOTHING_TO_REDUCE"
KIND_QUERY_FAILED = "QUERY_FAILED"
KIND_CANCELLED = "CANCELLED"
KIND_FATAL = "FATAL"
KIND_QUEUE_UNPAYABLE = "QUEUE_UNPAYABLE"

RETRYABLE_PATTERNS = (
    "transfer amount exceeds balance",
    "insufficient balance",
    "queueisempty",
    "firstemptyqueuethenstake",
    "execution reverted",
    "nonce too low",
    "replacement transaction underpriced",
    "already known",
    "reducestaketozero",
    "cannotunstakebelowminimum",
)

MSG_INSUFFICIENT_BALANCE = "Insufficient balance - operator does not have enough free DATA"
MSG_GAS_TOO_LOW = "Gas price too low - network congested"
MSG_QUEUE_NOT_EMPTY = "Undelegation queue not empty - cannot stake until queue is paid out"
MSG_STAKE_BLOCKED_BY_QUEUE = "Undelegation queue not empty - unstake first to free funds for queue payout"
MSG_NOTHING_TO_REDUCE = "Cannot reduce stake - target is not less than current stake or at minimum"


@dataclass(frozen=True)
class ErrorClassification:
    kind: str
    retryable: bool
    message: str


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, ConfirmationTimeout):
        return True
    text = str(exc).lower()
    return any(pattern in text for pattern in RETRYABLE_PATTERNS)


def friendly_message(exc: BaseException) -> str:
    text = str(exc)
    if "transfer amount exceeds balance" in text:
        return MSG_INSUFFICIENT_BALANCE
    if "gas price below minimum" in text:
        return MSG_GAS_TOO_LOW
    if "FirstEmptyQueueThenStake" in text or "queueIsEmpty" in text:
        return MSG_QUEUE_NOT_EMPTY
    return text or type(exc).__name__


def classify_error(exc: BaseException) -> ErrorClassification:
    if is_retryable_error(exc):
        return ErrorClassification(KIND_STALE_STATE, True, friendly_message(exc))
    return ErrorClassification(KIND_FATAL, False, friendly_message(exc))


__all__ = [
    "ErrorClassification",
    "KIND_CANCELLED",
    "KIND_FATAL",
    "KIND_NOTHING_TO_REDUCE",
    "KIND_QUERY_FAILED",
    "KIND_QUEUE_NOT_EMPTY",
    "KIND_QUEUE_UNPAYABLE",
    "KIND_STALE_STATE",
    "MSG_GAS_TOO_LOW",
    "MSG_INSUFFICIENT_BALANCE",
    "MSG_QUEUE_NOT_EMPTY",
    "MSG_NOTHING_TO_REDUCE",
    "MSG_STAKE_BLOCKED_BY_QUEUE",
    "RETRYABLE_PATTERNS",
    "classify_error",
    "friendly_message",
    "is_retryable_error",
]
