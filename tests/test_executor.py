import asyncio

import pytest

from autostaker.config import AutostakerConfig, ExecutionSettings
from autostaker.core.exceptions import LedgerError, UpstreamBadResponse
from autostaker.data.types import StakeableSponsorship
from autostaker.engine.planner import analyze
from autostaker.engine.types import Action
from autostaker.ledger.simulated import SimulatedChain, SimulatedLedger, SimulatedPending, SimulatedQueryProvider
from autostaker.orchestrator.errors import (
    KIND_FATAL,
    KIND_NOTHING_TO_REDUCE,
    KIND_QUERY_FAILED,
    KIND_QUEUE_NOT_EMPTY,
    KIND_STALE_STATE,
    MSG_INSUFFICIENT_BALANCE,
)
from autostaker.orchestrator.executor import StakeExecutor
from autostaker.orchestrator.report import STATUS_FAILED, STATUS_NOTHING_TO_DO, STATUS_PARTIAL, STATUS_SUCCESS
from autostaker.orchestrator.run_log import RunLogger

WEI = 10**18
OPERATOR = "0x1111111111111111111111111111111111111111"
CONFIG = AutostakerConfig()
SETTINGS = ExecutionSettings(
    retry_delay_sec=0,
    tx_delay_sec=0,
    queue_payout_delay_sec=0,
    confirmation_timeout_sec=1,
)


def _chain(free=0, stakes=None, queue=None, pools=(), min_stake=100 * WEI, locked=None):
    return SimulatedChain(
        operator_id=OPERATOR,
        free_funds=free,
        stakes=dict(stakes or {}),
        queue=list(queue or []),
        min_stake=min_stake,
        locked=dict(locked or {}),
        sponsorships=[StakeableSponsorship(id=pool_id, payout_per_sec=payout) for pool_id, payout in pools],
    )


def _executor(chain, settings=SETTINGS, ledger=None, query=None, logger=None):
    ledger = ledger or SimulatedLedger(chain)
    query = query or SimulatedQueryProvider(chain)
    return StakeExecutor(ledger, query, OPERATOR, CONFIG, settings, logger=logger), ledger, query


def _stake(pool_id, amount, current=0):
    return Action(type="stake", sponsorship_id=pool_id, amount=amount, target_stake=current + amount, current_stake=current)


def _unstake(pool_id, target, current):
    return Action(type="unstake", sponsorship_id=pool_id, amount=current - target, target_stake=target, current_stake=current)


@pytest.mark.asyncio
async def test_executes_compiled_plan(tmp_path):
    chain = _chain(free=1000 * WEI, pools=[("p1", 2), ("p2", 1)])
    logger = RunLogger(base_dir=tmp_path)
    executor, ledger, query = _executor(chain, logger=logger)

    analysis = await analyze(query, OPERATOR, CONFIG, ledger=ledger)
    report = await executor.execute(analysis.actions, analysis.sponsorships)
    logger.close()

    assert report.status == STATUS_SUCCESS
    assert [outcome.sponsorship_id for outcome in report.successful] == ["p1", "p2"]
    assert all(outcome.tx_hash.startswith("0x") for outcome in report.successful)
    assert set(chain.stakes) == {"p1", "p2"}
    assert chain.staked_total + chain.free_funds == 1000 * WEI
    assert logger.event_counts()["action_start"] == 2
    assert len(logger.actions) == 2


@pytest.mark.asyncio
async def test_empty_plan_is_nothing_to_do():
    executor, ledger, _ = _executor(_chain())
    report = await executor.execute([])

    assert report.status == STATUS_NOTHING_TO_DO
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_stakes_refused_while_queue_cannot_be_paid():
    chain = _chain(queue=[500 * WEI])
    executor, ledger, _ = _executor(chain)

    report = await executor.execute([_stake("p1", 100 * WEI), _stake("p2", 100 * WEI)])

    assert report.status == STATUS_FAILED
    assert [outcome.error_kind for outcome in report.failed] == [KIND_QUEUE_NOT_EMPTY, KIND_QUEUE_NOT_EMPTY]
    assert ledger.mutations() == ["pay_out_queue"]


@pytest.mark.asyncio
async def test_stale_balance_triggers_recalculation():
    chain = _chain(free=600 * WEI, pools=[("p1", 1)])
    executor, ledger, _ = _executor(chain)

    report = await executor.execute([_stake("p1", 1000 * WEI)])

    assert report.status == STATUS_SUCCESS
    assert report.recalculations == 1
    assert report.failed == []
    assert chain.stakes == {"p1": 600 * WEI}
    assert ledger.mutations() == ["stake", "stake"]


@pytest.mark.asyncio
async def test_retry_budget_is_bounded():
    chain = _chain(free=1000 * WEI, pools=[("p1", 1)])
    settings = SETTINGS.model_copy(update={"max_retry_attempts": 2})
    executor, ledger, _ = _executor(chain, settings=settings)
    ledger.fail_next("stake", "nonce too low", times=10)

    report = await executor.execute([_stake("p1", 1000 * WEI)])

    assert report.status == STATUS_FAILED
    assert report.recalculations == 2
    assert ledger.mutations().count("stake") == 3
    assert report.failed[0].retries == 2
    assert report.failed[0].error_kind == KIND_STALE_STATE


@pytest.mark.asyncio
async def test_empty_recalculation_records_failure():
    chain = _chain(free=0)
    executor, _, _ = _executor(chain)

    report = await executor.execute([_stake("p1", 1000 * WEI)])

    assert report.status == STATUS_FAILED
    assert report.recalculations == 1
    assert report.failed[0].error == MSG_INSUFFICIENT_BALANCE


@pytest.mark.asyncio
async def test_fatal_error_is_per_action():
    chain = _chain(free=1000 * WEI)
    executor, ledger, _ = _executor(chain)
    ledger.fail_next("stake", LedgerError("boom"))

    report = await executor.execute([_stake("p1", 100 * WEI), _stake("p2", 100 * WEI)])

    assert report.status == STATUS_PARTIAL
    assert report.recalculations == 0
    assert report.failed[0].sponsorship_id == "p1"
    assert report.failed[0].error_kind == KIND_FATAL
    assert report.successful[0].sponsorship_id == "p2"


@pytest.mark.asyncio
async def test_unstake_target_clamped_and_noop_skipped():
    chain = _chain(stakes={"p1": 300 * WEI, "p2": 200 * WEI}, locked={"p2": 200 * WEI})
    executor, _, _ = _executor(chain)

    report = await executor.execute([_unstake("p1", 50 * WEI, 300 * WEI), _unstake("p2", 0, 200 * WEI)])

    assert report.status == STATUS_SUCCESS
    assert chain.stakes["p1"] == 100 * WEI
    assert chain.stakes["p2"] == 200 * WEI
    assert [outcome.sponsorship_id for outcome in report.skipped] == ["p2"]
    assert report.skipped[0].error_kind == KIND_NOTHING_TO_REDUCE


@pytest.mark.asyncio
async def test_queue_payment_unstake_pays_out_queue():
    chain = _chain(free=50 * WEI, stakes={"p1": 400 * WEI}, queue=[200 * WEI], pools=[("p1", 1)])
    executor, ledger, query = _executor(chain)

    analysis = await analyze(query, OPERATOR, CONFIG, ledger=ledger)
    assert analysis.is_queue_payment
    report = await executor.execute(analysis.actions, analysis.sponsorships)

    assert report.status == STATUS_SUCCESS
    assert [outcome.type for outcome in report.successful] == ["unstake", "queue_payout"]
    assert chain.queue == []
    assert ledger.mutations() == ["pay_out_queue", "reduce_stake_to", "pay_out_queue"]


@pytest.mark.asyncio
async def test_confirmation_timeout_is_retried():
    chain = _chain(free=500 * WEI, pools=[("p1", 1)])
    settings = SETTINGS.model_copy(update={"confirmation_timeout_sec": 0.05})
    executor, ledger, _ = _executor(chain, settings=settings)
    ledger.hang_next("stake")

    report = await executor.execute([_stake("p1", 500 * WEI)])

    assert report.status == STATUS_SUCCESS
    assert report.recalculations == 1
    assert chain.stakes == {"p1": 500 * WEI}


@pytest.mark.asyncio
async def test_confirmation_timeout_reaches_receipt_wait(monkeypatch):
    chain = _chain(free=500 * WEI, pools=[("p1", 1)])
    settings = SETTINGS.model_copy(update={"confirmation_timeout_sec": 7.5})
    executor, _, _ = _executor(chain, settings=settings)
    timeouts = []
    original_wait = SimulatedPending.wait

    async def _recording_wait(self, timeout_sec=None):
        timeouts.append(timeout_sec)
        return await original_wait(self, timeout_sec)

    monkeypatch.setattr(SimulatedPending, "wait", _recording_wait)
    report = await executor.execute([_stake("p1", 500 * WEI)])

    assert report.status == STATUS_SUCCESS
    assert timeouts == [7.5]


@pytest.mark.asyncio
async def test_query_failure_during_recalculation_aborts_run():
    chain = _chain(free=1000 * WEI, pools=[("p1", 1), ("p2", 1)])
    executor, ledger, query = _executor(chain)
    ledger.fail_next("stake", "nonce too low")
    query.fail_next("get_current_stakes", UpstreamBadResponse("indexer unavailable"))

    report = await executor.execute([_stake("p1", 500 * WEI), _stake("p2", 500 * WEI)])

    assert report.status == STATUS_FAILED
    assert report.aborted
    assert [outcome.error_kind for outcome in report.failed] == [KIND_QUERY_FAILED, KIND_QUERY_FAILED]
    assert chain.stakes == {}


@pytest.mark.asyncio
async def test_queue_read_failure_is_hard_failure():
    chain = _chain(free=1000 * WEI)
    executor, ledger, _ = _executor(chain)
    ledger.fail_next("queue_is_empty", LedgerError("rpc unavailable"))

    report = await executor.execute([_stake("p1", 100 * WEI)])

    assert report.status == STATUS_FAILED
    assert report.failed[0].error_kind == KIND_QUERY_FAILED
    assert ledger.mutations() == []


class _CancellingLedger(SimulatedLedger):
    def __init__(self, chain, event):
        super().__init__(chain)
        self.event = event

    async def stake(self, sponsorship_id, amount_wei):
        pending = await super().stake(sponsorship_id, amount_wei)
        self.event.set()
        return pending


@pytest.mark.asyncio
async def test_cancellation_between_actions():
    chain = _chain(free=1000 * WEI)
    event = asyncio.Event()
    ledger = _CancellingLedger(chain, event)
    executor, _, _ = _executor(chain, ledger=ledger)

    report = await executor.execute(
        [_stake("p1", 100 * WEI), _stake("p2", 100 * WEI), _stake("p3", 100 * WEI)],
        cancel_event=event,
    )

    assert report.status == STATUS_PARTIAL
    assert [outcome.sponsorship_id for outcome in report.successful] == ["p1"]
    assert [outcome.sponsorship_id for outcome in report.cancelled] == ["p2", "p3"]
    assert chain.stakes == {"p1": 100 * WEI}
