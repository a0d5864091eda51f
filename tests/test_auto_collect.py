import asyncio
from datetime import datetime, timedelta, timezone

from autostaker.config import AutostakerConfig, ExecutionSettings
from autostaker.data.types import StakeableSponsorship
from autostaker.ledger.simulated import SimulatedChain, SimulatedLedger, SimulatedQueryProvider
from autostaker.orchestrator.collect import (
    execute_auto_collect,
    list_sponsorships,
    should_auto_collect,
    time_until_next_collect,
)
from autostaker.orchestrator.runner import maybe_auto_collect

WEI = 10**18
OPERATOR = "0x1111111111111111111111111111111111111111"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _chain():
    return SimulatedChain(
        operator_id=OPERATOR,
        stakes={"p1": 500 * WEI, "p2": 300 * WEI},
        earnings={"p1": 7 * WEI, "p2": 3 * WEI},
        sponsorships=[
            StakeableSponsorship(id="p1", payout_per_sec=5, stream_id="stream/one"),
            StakeableSponsorship(id="p3", payout_per_sec=9, stream_id="stream/three"),
            StakeableSponsorship(id="p2", payout_per_sec=1, stream_id="stream/two"),
        ],
    )


def test_should_auto_collect_schedule():
    assert should_auto_collect(AutostakerConfig(), NOW)
    assert not should_auto_collect(AutostakerConfig(auto_collect_enabled=False), NOW)

    recent = AutostakerConfig(last_collect_time=NOW - timedelta(hours=3))
    assert not should_auto_collect(recent, NOW)
    stale = AutostakerConfig(last_collect_time=NOW - timedelta(hours=24))
    assert should_auto_collect(stale, NOW)


def test_time_until_next_collect_formatting():
    assert time_until_next_collect(AutostakerConfig(auto_collect_enabled=False), NOW).formatted == "Disabled"
    assert time_until_next_collect(AutostakerConfig(), NOW).formatted == "Next cycle"

    config = AutostakerConfig(last_collect_time=NOW - timedelta(hours=20, minutes=48))
    countdown = time_until_next_collect(config, NOW)
    assert (countdown.hours, countdown.minutes, countdown.formatted) == (3, 12, "3h 12m")

    soon = AutostakerConfig(last_collect_time=NOW - timedelta(hours=23, minutes=48))
    assert time_until_next_collect(soon, NOW).formatted == "12m"

    overdue = AutostakerConfig(last_collect_time=NOW - timedelta(days=3))
    assert time_until_next_collect(overdue, NOW).formatted == "Next cycle"


def test_naive_last_collect_time_is_treated_as_utc():
    config = AutostakerConfig(last_collect_time=datetime(2024, 5, 1, 11, 0))
    assert time_until_next_collect(config, NOW).formatted == "23h 0m"


def test_execute_auto_collect_withdraws_from_every_stake():
    chain = _chain()
    ledger = SimulatedLedger(chain)

    result = asyncio.run(execute_auto_collect(SimulatedQueryProvider(chain), ledger, OPERATOR))

    assert result.success
    assert result.sponsorships_count == 2
    assert result.tx_hash.startswith("0x")
    assert chain.free_funds == 10 * WEI
    assert ledger.calls == [("withdraw_earnings", (("p1", "p2"),))]


def test_execute_auto_collect_without_stakes_is_skipped():
    chain = SimulatedChain(operator_id=OPERATOR)
    ledger = SimulatedLedger(chain)

    result = asyncio.run(execute_auto_collect(SimulatedQueryProvider(chain), ledger, OPERATOR))

    assert result.success and result.skipped
    assert ledger.calls == []


def test_execute_auto_collect_reports_failure():
    chain = _chain()
    ledger = SimulatedLedger(chain)
    ledger.fail_next("withdraw_earnings", "transaction gas price below minimum")

    result = asyncio.run(execute_auto_collect(SimulatedQueryProvider(chain), ledger, OPERATOR))

    assert not result.success
    assert result.error == "Gas price too low - network congested"


def test_first_collect_is_ignored_but_timestamp_recorded():
    chain = _chain()
    ledger = SimulatedLedger(chain)
    config = AutostakerConfig()

    result, last = asyncio.run(
        maybe_auto_collect(SimulatedQueryProvider(chain), ledger, OPERATOR, config, NOW, ExecutionSettings())
    )

    assert result is None
    assert last == NOW
    assert ledger.calls == []
    assert config.last_collect_time is None


def test_due_collect_updates_timestamp():
    chain = _chain()
    config = AutostakerConfig(last_collect_time=NOW - timedelta(hours=30))

    result, last = asyncio.run(
        maybe_auto_collect(SimulatedQueryProvider(chain), SimulatedLedger(chain), OPERATOR, config, NOW, ExecutionSettings())
    )

    assert result.success
    assert last == NOW


def test_list_sponsorships_flags_stakes_and_exclusions():
    chain = _chain()
    rows = asyncio.run(list_sponsorships(SimulatedQueryProvider(chain), OPERATOR, excluded=["P3"], now_ts=0))

    assert [row.id for row in rows] == ["p1", "p2", "p3"]
    assert rows[0].is_staked and rows[0].current_stake == 500 * WEI
    assert rows[2].is_excluded and not rows[2].is_staked
