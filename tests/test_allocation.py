from autostaker.data.types import StakeableSponsorship
from autostaker.engine.allocation import (
    compute_targets,
    select_sponsorships,
    tie_break_hash,
    total_stakeable_amount,
)

WEI = 10**18
OPERATOR = "0x1111111111111111111111111111111111111111"


def _pools(*items):
    return {
        sponsorship_id: StakeableSponsorship(id=sponsorship_id, payout_per_sec=payout)
        for sponsorship_id, payout in items
    }


def test_tie_break_hash_is_fnv1a_32():
    assert tie_break_hash("") == 0x811C9DC5
    assert tie_break_hash("a") == 0xE40C292C
    assert tie_break_hash("foobar") == 0xBF9CF968


def test_total_stakeable_is_clamped_at_zero():
    assert total_stakeable_amount({"p1": 100}, 50, 400) == 0
    assert total_stakeable_amount({"p1": 100}, 50, 30) == 120


def test_scenario_equal_payouts_split_evenly():
    pools = _pools(("p1", 1), ("p2", 1))
    targets = compute_targets({}, 1000 * WEI, pools, 0, 100 * WEI, OPERATOR, 20)

    assert targets == {"p1": 500 * WEI, "p2": 500 * WEI}


def test_targets_never_exceed_stakeable_amount():
    pools = _pools(("p1", 7), ("p2", 3), ("p3", 11))
    current = {"p1": 333 * WEI + 1}
    free = 1234 * WEI + 7
    queue = 200 * WEI
    targets = compute_targets(current, free, pools, queue, 50 * WEI, OPERATOR, 20)

    assert sum(targets.values()) <= sum(current.values()) + free - queue
    assert all(value >= 50 * WEI for value in targets.values())


def test_expired_stake_gets_zero_target():
    pools = _pools(("p1", 5))
    targets = compute_targets({"gone": 400 * WEI}, 600 * WEI, pools, 0, 100 * WEI, OPERATOR, 20)

    assert targets["gone"] == 0
    assert targets["p1"] == 1000 * WEI


def test_nothing_selectable_only_unwinds_expired_stakes():
    pools = _pools(("p1", 5))
    targets = compute_targets({"gone": 10 * WEI}, 20 * WEI, pools, 0, 100 * WEI, OPERATOR, 20)

    assert targets == {"gone": 0}


def test_selection_keeps_current_stakes_before_new_pools():
    pools = _pools(("low", 1), ("high", 100), ("mid", 50))
    selected = select_sponsorships({"low": 100 * WEI}, pools, 300 * WEI, OPERATOR, 2, 100 * WEI)

    assert selected == ["low", "high"]


def test_selection_capped_by_minimum_stake():
    pools = _pools(("a", 10), ("b", 9), ("c", 8))
    selected = select_sponsorships({}, pools, 250 * WEI, OPERATOR, 20, 100 * WEI)

    assert selected == ["a", "b"]


def test_tie_break_is_deterministic_per_operator():
    pools = _pools(("x", 5), ("y", 5), ("z", 5))
    first = select_sponsorships({}, pools, 1000 * WEI, OPERATOR, 1, 100 * WEI)
    again = select_sponsorships({}, dict(reversed(list(pools.items()))), 1000 * WEI, OPERATOR, 1, 100 * WEI)

    assert first == again
    expected = min(["x", "y", "z"], key=lambda pool_id: tie_break_hash(OPERATOR + pool_id))
    assert first == [expected]


def test_zero_payout_sum_gives_minimum_only():
    pools = _pools(("p1", 0), ("p2", 0))
    targets = compute_targets({}, 1000 * WEI, pools, 0, 100 * WEI, OPERATOR, 20)

    assert targets == {"p1": 100 * WEI, "p2": 100 * WEI}


def test_zero_max_sponsorship_count_unwinds_everything_expired():
    pools = _pools(("p1", 5))
    targets = compute_targets({"p1": 200 * WEI, "old": 50 * WEI}, 0, pools, 0, 100 * WEI, OPERATOR, 0)

    assert targets == {"old": 0}
