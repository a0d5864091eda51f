from __future__ import annotations

import random
from typing import Dict, List, Optional

WEI = 10**18

MIN_STAKE_DATA = 5000
FAR_FUTURE_TS = 4102444800  # 2100-01-01
PAST_TS = 1000000000

OPERATOR_ID = "0x" + "11" * 20
QUEUE_OPERATOR_ID = "0x" + "22" * 20


def _address(rng: random.Random) -> str:
    return f"0x{rng.getrandbits(160):040x}"


def _sponsorship(
    rng: random.Random,
    index: int,
    payout_per_sec: int,
    max_operators: Optional[int] = None,
    operator_count: Optional[int] = None,
    min_operators: int = 1,
    is_running: bool = True,
    projected_insolvency: int = FAR_FUTURE_TS,
    minimum_staking_period: int = 0,
    remaining_data: Optional[int] = None,
) -> Dict[str, object]:
    sponsorship_id = _address(rng)
    remaining = remaining_data if remaining_data is not None else rng.randint(1_000, 500_000)
    count = operator_count if operator_count is not None else rng.randint(0, 6)
    return {
        "id": sponsorship_id,
        "totalPayoutWeiPerSec": str(payout_per_sec),
        "operatorCount": count,
        "maxOperators": max_operators,
        "minOperators": min_operators,
        "remainingWei": str(remaining * WEI),
        "spotAPY": round(rng.uniform(0.02, 0.4), 4),
        "isRunning": is_running,
        "projectedInsolvency": str(projected_insolvency),
        "minimumStakingPeriodSeconds": str(minimum_staking_period),
        "stream": {"id": f"{_address(rng)}/autostaker/pool-{index:02d}"},
    }


def _sponsorships(rng: random.Random) -> List[Dict[str, object]]:
    items = [
        _sponsorship(rng, index, rng.randint(1, 50) * 10**14)
        for index in range(8)
    ]
    items.append(_sponsorship(rng, 8, 40 * 10**14, max_operators=3, operator_count=3))
    items.append(_sponsorship(rng, 9, 10**11))
    items.append(_sponsorship(rng, 10, 30 * 10**14, is_running=False))
    items.append(_sponsorship(rng, 11, 30 * 10**14, projected_insolvency=PAST_TS))
    items.append(_sponsorship(rng, 12, 30 * 10**14, minimum_staking_period=86400))
    items.append(_sponsorship(rng, 13, 30 * 10**14, min_operators=9))
    items.append(_sponsorship(rng, 14, 30 * 10**14, remaining_data=5))
    return items


def generate_seed(seed: int = 7) -> Dict[str, object]:
    """Deterministic subgraph state: sponsorships, a balanced operator and one with an unpaid queue."""
    rng = random.Random(seed)
    sponsorships = _sponsorships(rng)
    first, second, third = (item["id"] for item in sponsorships[:3])

    operators = {
        OPERATOR_ID: {
            "free": 25_000 * WEI,
            "stakes": {first: 12_000 * WEI, second: 8_000 * WEI},
            "queue": [],
        },
        QUEUE_OPERATOR_ID: {
            "free": 500 * WEI,
            "stakes": {first: 9_000 * WEI, third: 20_000 * WEI},
            "queue": [3_000 * WEI, 1_500 * WEI],
        },
    }
    return {
        "network": {"minimumStakeWei": str(MIN_STAKE_DATA * WEI)},
        "sponsorships": sponsorships,
        "operators": operators,
    }


__all__ = ["OPERATOR_ID", "QUEUE_OPERATOR_ID", "generate_seed"]
