from autostaker.orchestrator.collect import (
    execute_auto_collect,
    list_sponsorships,
    should_auto_collect,
    time_until_next_collect,
)
from autostaker.orchestrator.errors import ErrorClassification, classify_error
from autostaker.orchestrator.executor import StakeExecutor
from autostaker.orchestrator.report import ActionOutcome, ExecutionReport, describe_action
from autostaker.orchestrator.run_log import RunLogger
from autostaker.orchestrator.runner import CycleResult, run_cycle

__all__ = [
    "ActionOutcome",
    "CycleResult",
    "ErrorClassification",
    "ExecutionReport",
    "RunLogger",
    "StakeExecutor",
    "classify_error",
    "describe_action",
    "execute_auto_collect",
    "list_sponsorships",
    "run_cycle",
    "should_auto_collect",
    "time_until_next_collect",
]
