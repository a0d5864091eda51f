from autostaker.engine.allocation import compute_targets, tie_break_hash
from autostaker.engine.compiler import compile_actions
from autostaker.engine.planner import AnalysisResult, analyze
from autostaker.engine.queue_drain import plan_queue_payment
from autostaker.engine.types import ACTION_QUEUE_PAYOUT, ACTION_STAKE, ACTION_UNSTAKE, Action, TargetAllocation

__all__ = [
    "ACTION_QUEUE_PAYOUT",
    "ACTION_STAKE",
    "ACTION_UNSTAKE",
    "Action",
    "AnalysisResult",
    "TargetAllocation",
    "analyze",
    "compile_actions",
    "compute_targets",
    "plan_queue_payment",
    "tie_break_hash",
]
