from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from autostaker.config import AutostakerConfig, ExecutionSettings
from autostaker.core.exceptions import RunInProgress
from autostaker.data.query_provider import LedgerQueryProvider
from autostaker.engine.planner import AnalysisResult, analyze
from autostaker.orchestrator.collect import (
    CollectResult,
    execute_auto_collect,
    should_auto_collect,
    time_until_next_collect,
)
from autostaker.orchestrator.errors import KIND_QUEUE_UNPAYABLE
from autostaker.orchestrator.executor import StakeExecutor
from autostaker.orchestrator.report import ExecutionReport, describe_action
from autostaker.orchestrator.run_log import RunLogger

NO_ACTIONS_MESSAGE = "No actions needed - stakes are balanced"

_OPERATOR_LOCKS: Dict[str, asyncio.Lock] = {}


def _operator_lock(operator_id: str) -> asyncio.Lock:
    key = operator_id.lower()
    lock = _OPERATOR_LOCKS.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _OPERATOR_LOCKS[key] = lock
    return lock


@dataclass
class CycleResult:
    run_id: str
    run_dir: Path
    analysis: AnalysisResult
    report: ExecutionReport
    collect: Optional[CollectResult] = None
    last_collect_time: Optional[datetime] = None
    summary: Dict[str, Any] = field(default_factory=dict)


async def maybe_auto_collect(
    query: LedgerQueryProvider,
    ledger,
    operator_id: str,
    config: AutostakerConfig,
    now: datetime,
    settings: ExecutionSettings,
    logger: Optional[RunLogger] = None,
) -> Tuple[Optional[CollectResult], Optional[datetime]]:
    """Run auto-collect when due; returns the result and the new ``last_collect_time``."""
    if not should_auto_collect(config, now):
        if config.auto_collect_enabled and logger is not None:
            logger.event("auto_collect_pending", next_in=time_until_next_collect(config, now).formatted)
        return None, config.last_collect_time
    if config.ignore_first_collect and config.last_collect_time is None:
        if logger is not None:
            logger.event("auto_collect_ignored_first", operator=operator_id)
        return None, now
    result = await execute_auto_collect(
        query, ledger, operator_id, timeout_sec=settings.confirmation_timeout_sec, logger=logger
    )
    if result.success and not result.skipped:
        return result, now
    return result, config.last_collect_time


def _build_run_summary(
    run_id: str,
    operator_id: str,
    executed: bool,
    analysis: AnalysisResult,
    report: ExecutionReport,
    collect: Optional[CollectResult],
    config: AutostakerConfig,
    now: datetime,
    event_counts: Dict[str, int],
) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "timestamp": now.isoformat(),
        "operator": operator_id,
        "mode": "execute" if executed else "plan",
        "analysis": analysis.summary(),
        "planned_actions": [describe_action(action, analysis.sponsorships) for action in analysis.actions],
        "report": report.summary(),
        "auto_collect": None
        if collect is None
        else {
            "success": collect.success,
            "skipped": collect.skipped,
            "tx_hash": collect.tx_hash,
            "sponsorships": collect.sponsorships_count,
            "error": collect.error,
        },
        "last_collect_time": config.last_collect_time.isoformat() if config.last_collect_time else None,
        "next_collect": time_until_next_collect(config, now).formatted,
        "event_counts": event_counts,
    }


async def run_cycle(
    query: LedgerQueryProvider,
    ledger,
    operator_id: str,
    config: AutostakerConfig,
    settings: Optional[ExecutionSettings] = None,
    execute: bool = True,
    log_dir: Optional[Path] = None,
    cancel_event: Optional[asyncio.Event] = None,
    now: Optional[datetime] = None,
    summarize: bool = True,
) -> CycleResult:
    """One analyse-and-execute cycle for a single operator.

    Only one cycle per operator may run at a time; a second concurrent call
    raises ``RunInProgress`` instead of queueing behind the first.
    """
    lock = _operator_lock(operator_id)
    if lock.locked():
        raise RunInProgress(f"A cycle for operator {operator_id} is already running")

    exec_settings = settings or ExecutionSettings()
    async with lock:
        logger = RunLogger(base_dir=log_dir)
        try:
            cycle_now = now or datetime.now(timezone.utc)
            logger.event("cycle_start", operator=operator_id, execute=execute)

            collect: Optional[CollectResult] = None
            last_collect_time = config.last_collect_time
            if execute:
                collect, last_collect_time = await maybe_auto_collect(
                    query, ledger, operator_id, config, cycle_now, exec_settings, logger
                )

            analysis = await analyze(
                query,
                operator_id,
                config,
                ledger=ledger,
                now_ts=int(cycle_now.timestamp()),
                logger=logger,
            )

            if execute and analysis.actions:
                executor = StakeExecutor(ledger, query, operator_id, config, exec_settings, logger=logger)
                report = await executor.execute(analysis.actions, analysis.sponsorships, cancel_event)
            elif analysis.skipped_reason:
                report = ExecutionReport(message=analysis.skipped_reason, error_kind=KIND_QUEUE_UNPAYABLE).finalize()
                logger.event("queue_unpayable", operator=operator_id, queue=str(analysis.undelegation_queue_amount))
            else:
                report = ExecutionReport(message=None if analysis.actions else NO_ACTIONS_MESSAGE).finalize()

            effective = config.model_copy(update={"last_collect_time": last_collect_time})
            summary = _build_run_summary(
                logger.run_dir.name,
                operator_id,
                execute,
                analysis,
                report,
                collect,
                effective,
                cycle_now,
                logger.event_counts(),
            )
            logger.write_summary(summary)
            if summarize:
                logger.summarize()
            return CycleResult(
                run_id=logger.run_dir.name,
                run_dir=logger.run_dir,
                analysis=analysis,
                report=report,
                collect=collect,
                last_collect_time=last_collect_time,
                summary=summary,
            )
        finally:
            logger.close()


__all__ = ["CycleResult", "NO_ACTIONS_MESSAGE", "maybe_auto_collect", "run_cycle"]
