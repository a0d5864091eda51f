from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional, Set

from autostaker.config import AutostakerConfig, ExecutionSettings
from autostaker.core.exceptions import ConfirmationTimeout
from autostaker.data.query_provider import LedgerQueryProvider
from autostaker.data.types import StakeableSponsorship
from autostaker.engine.planner import analyze
from autostaker.engine.types import Action, unstakes_first
from autostaker.ledger.base import OperatorLedger, PendingTransaction, TxReceipt
from autostaker.orchestrator.errors import (
    KIND_CANCELLED,
    KIND_NOTHING_TO_REDUCE,
    KIND_QUERY_FAILED,
    KIND_QUEUE_NOT_EMPTY,
    MSG_NOTHING_TO_REDUCE,
    MSG_STAKE_BLOCKED_BY_QUEUE,
    classify_error,
)
from autostaker.orchestrator.report import (
    OUTCOME_CANCELLED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    OUTCOME_SUCCEEDED,
    ActionOutcome,
    ExecutionReport,
)


class StakeExecutor:
    """Submits compiled actions one at a time and recalculates the plan on stale-state failures.

    The retry budget covers the whole run: every recalculation consumes one
    attempt, so a run performs at most ``len(actions) + max_retry_attempts``
    action submissions per plan generation before it terminates.
    """

    def __init__(
        self,
        ledger: OperatorLedger,
        query: LedgerQueryProvider,
        operator_id: str,
        config: AutostakerConfig,
        settings: Optional[ExecutionSettings] = None,
        logger=None,
    ) -> None:
        self.ledger = ledger
        self.query = query
        self.operator_id = operator_id
        self.config = config
        self.settings = settings or ExecutionSettings()
        self.logger = logger
        self._sponsorships: Dict[str, StakeableSponsorship] = {}

    def _log(self, name: str, **fields: Any) -> None:
        if self.logger is not None:
            self.logger.event(name, operator=self.operator_id, **fields)

    def _record(self, report: ExecutionReport, outcome: ActionOutcome) -> None:
        report.record(outcome)
        if self.logger is not None:
            self.logger.action(outcome.as_record())

    def _outcome(self, action: Action, status: str, **fields: Any) -> ActionOutcome:
        return ActionOutcome.from_action(action, status, self._sponsorships, **fields)

    async def _confirm(self, pending: PendingTransaction) -> TxReceipt:
        timeout = self.settings.confirmation_timeout_sec
        try:
            return await asyncio.wait_for(pending.wait(timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ConfirmationTimeout(pending.tx_hash, timeout) from exc

    async def _pay_out_queue(self, stage: str) -> Optional[str]:
        try:
            pending = await self.ledger.pay_out_queue(0)
            receipt = await self._confirm(pending)
        except Exception as exc:
            self._log("queue_payout_failed", stage=stage, error=str(exc))
            return None
        self._log("queue_payout", stage=stage, tx_hash=receipt.tx_hash)
        return receipt.tx_hash

    async def _submit(self, action: Action) -> Optional[str]:
        """Send one action and wait for confirmation. ``None`` means there was nothing to reduce."""
        if action.is_stake:
            pending = await self.ledger.stake(action.sponsorship_id, action.amount)
        else:
            on_chain = await self.ledger.staked_into(action.sponsorship_id)
            minimum = await self.ledger.minimum_stake_of(action.sponsorship_id)
            locked = await self.ledger.locked_stake_wei(action.sponsorship_id)
            target = action.target_stake
            floor = max(minimum, locked)
            if 0 < target < floor or (target == 0 and locked > 0):
                self._log("unstake_target_clamped", sponsorship=action.sponsorship_id, target=str(target), floor=str(floor))
                target = floor
            if target >= on_chain:
                self._log(
                    "unstake_skipped",
                    sponsorship=action.sponsorship_id,
                    target=str(target),
                    on_chain=str(on_chain),
                )
                return None
            pending = await self.ledger.reduce_stake_to(action.sponsorship_id, target)
        receipt = await self._confirm(pending)
        return receipt.tx_hash

    def _fail_remaining(self, report: ExecutionReport, actions: List[Action], kind: str, message: str, retries: int = 0) -> None:
        for action in actions:
            self._record(
                report,
                self._outcome(action, OUTCOME_FAILED, error_kind=kind, error=message, retries=retries),
            )

    async def _queue_check(self, report: ExecutionReport, actions: List[Action]) -> bool:
        try:
            queue_empty = await self.ledger.queue_is_empty()
            if not queue_empty:
                self._log("queue_not_empty", stage="pre_step")
                await self._pay_out_queue("pre_step")
                stakes = [action for action in actions if action.is_stake]
                has_unstakes = any(action.is_unstake for action in actions)
                if stakes and not has_unstakes and not await self.ledger.queue_is_empty():
                    report.message = "Undelegation queue not empty - need to unstake first to free funds"
                    self._fail_remaining(report, stakes, KIND_QUEUE_NOT_EMPTY, MSG_STAKE_BLOCKED_BY_QUEUE)
                    return False
        except Exception as exc:
            self._log("queue_check_failed", error=str(exc))
            report.message = f"Could not read undelegation queue state: {exc}"
            report.aborted = True
            self._fail_remaining(report, actions, KIND_QUERY_FAILED, str(exc))
            return False
        return True

    async def execute(
        self,
        actions: List[Action],
        sponsorships: Optional[Mapping[str, StakeableSponsorship]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionReport:
        report = ExecutionReport()
        if not actions:
            report.message = "No actions to execute"
            return report.finalize()

        self._sponsorships = dict(sponsorships or {})
        current = unstakes_first(list(actions))
        if not await self._queue_check(report, current):
            return report.finalize()

        attempts = 0
        index = 0
        acted_on: Set[str] = set()
        started = time.monotonic()

        while index < len(current):
            if cancel_event is not None and cancel_event.is_set():
                self._log("cancelled", remaining=len(current) - index)
                for action in current[index:]:
                    self._record(report, self._outcome(action, OUTCOME_CANCELLED, error_kind=KIND_CANCELLED))
                break

            action = current[index]
            self._log(
                "action_start",
                index=index + 1,
                total=len(current),
                type=action.type,
                sponsorship=action.sponsorship_id,
                amount=str(action.amount),
                is_retry=attempts > 0,
            )
            try:
                tx_hash = await self._submit(action)
            except Exception as exc:
                classification = classify_error(exc)
                self._log("action_failed", sponsorship=action.sponsorship_id, kind=classification.kind, error=str(exc))
                if classification.retryable and attempts < self.settings.max_retry_attempts:
                    attempts += 1
                    report.recalculations = attempts
                    self._log("recalculating", attempt=attempts, max_attempts=self.settings.max_retry_attempts)
                    await asyncio.sleep(self.settings.retry_delay_sec)
                    try:
                        analysis = await analyze(
                            self.query, self.operator_id, self.config, ledger=self.ledger, logger=self.logger
                        )
                    except Exception as query_exc:
                        self._log("recalculation_failed", error=str(query_exc))
                        report.aborted = True
                        report.message = f"Recalculation failed: {query_exc}"
                        self._fail_remaining(report, current[index:], KIND_QUERY_FAILED, str(query_exc), attempts)
                        break
                    fresh = [item for item in analysis.actions if item.sponsorship_id not in acted_on]
                    if fresh:
                        self._sponsorships.update(analysis.sponsorships)
                        current = unstakes_first(fresh)
                        index = 0
                        self._log("recalculated", actions=len(current))
                        continue
                    self._log("recalculation_empty")
                self._record(
                    report,
                    self._outcome(
                        action,
                        OUTCOME_FAILED,
                        error_kind=classification.kind,
                        error=classification.message,
                        retries=attempts,
                    ),
                )
                index += 1
                continue

            if tx_hash is None:
                self._record(
                    report,
                    self._outcome(action, OUTCOME_SKIPPED, error_kind=KIND_NOTHING_TO_REDUCE, error=MSG_NOTHING_TO_REDUCE),
                )
                index += 1
                continue

            acted_on.add(action.sponsorship_id)
            self._record(report, self._outcome(action, OUTCOME_SUCCEEDED, tx_hash=tx_hash, retries=attempts))
            if action.is_queue_payment:
                await asyncio.sleep(self.settings.queue_payout_delay_sec)
                payout_hash = await self._pay_out_queue("after_queue_payment")
                if payout_hash:
                    self._record(report, ActionOutcome.queue_payout(payout_hash))
            index += 1
            if index < len(current):
                await asyncio.sleep(self.settings.tx_delay_sec)

        report.finalize()
        self._log("execution_finished", elapsed_sec=round(time.monotonic() - started, 3), **report.summary())
        return report


__all__ = ["StakeExecutor"]
