from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from autostaker.config import AutostakerConfig
from autostaker.data.query_provider import LedgerQueryProvider
from autostaker.data.types import SponsorshipListing
from autostaker.orchestrator.errors import friendly_message


@dataclass(frozen=True)
class CollectCountdown:
    hours: int
    minutes: int
    formatted: str


@dataclass(frozen=True)
class CollectResult:
    success: bool
    skipped: bool = False
    tx_hash: Optional[str] = None
    sponsorships_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _utc(now) if now else datetime.now(timezone.utc)


def should_auto_collect(config: AutostakerConfig, now: Optional[datetime] = None) -> bool:
    if not config.auto_collect_enabled:
        return False
    if config.last_collect_time is None:
        return True
    elapsed = _now(now) - _utc(config.last_collect_time)
    return elapsed >= timedelta(hours=config.auto_collect_interval_hours)


def time_until_next_collect(config: AutostakerConfig, now: Optional[datetime] = None) -> CollectCountdown:
    if not config.auto_collect_enabled:
        return CollectCountdown(0, 0, "Disabled")
    if config.last_collect_time is None:
        return CollectCountdown(0, 0, "Next cycle")
    next_collect = _utc(config.last_collect_time) + timedelta(hours=config.auto_collect_interval_hours)
    remaining = next_collect - _now(now)
    if remaining <= timedelta(0):
        return CollectCountdown(0, 0, "Next cycle")
    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return CollectCountdown(hours, minutes, f"{hours}h {minutes}m")
    return CollectCountdown(hours, minutes, f"{minutes}m")


async def execute_auto_collect(query: LedgerQueryProvider, ledger, operator_id: str, timeout_sec: float = 180.0, logger=None) -> CollectResult:
    """Withdraw earnings from every sponsorship the operator is staked into."""
    stakes = await query.get_current_stakes(operator_id)
    if not stakes:
        if logger is not None:
            logger.event("auto_collect_skipped", operator=operator_id, reason="no stakes")
        return CollectResult(success=True, skipped=True, message="No stakes to collect")

    sponsorship_ids = list(stakes)
    try:
        pending = await ledger.withdraw_earnings(sponsorship_ids)
        receipt = await asyncio.wait_for(pending.wait(timeout_sec), timeout=timeout_sec)
    except Exception as exc:
        message = friendly_message(exc)
        if logger is not None:
            logger.event("auto_collect_failed", operator=operator_id, error=message)
        return CollectResult(success=False, sponsorships_count=len(sponsorship_ids), error=message)

    if logger is not None:
        logger.event("auto_collect", operator=operator_id, tx_hash=receipt.tx_hash, sponsorships=len(sponsorship_ids))
    return CollectResult(success=True, tx_hash=receipt.tx_hash, sponsorships_count=len(sponsorship_ids))


async def list_sponsorships(
    query: LedgerQueryProvider,
    operator_id: str,
    excluded: Iterable[str] = (),
    now_ts: Optional[int] = None,
) -> List[SponsorshipListing]:
    """All running sponsorships with the operator's stake and exclusion flags, staked ones first."""
    now = int(now_ts if now_ts is not None else time.time())
    listings = await query.get_all_sponsorships(now)
    stakes = await query.get_current_stakes(operator_id)
    excluded_ids = {item.lower() for item in excluded}
    rows = [
        listing.model_copy(
            update={
                "current_stake": stakes.get(listing.id, 0),
                "is_staked": listing.id in stakes,
                "is_excluded": listing.id.lower() in excluded_ids,
            }
        )
        for listing in listings
    ]
    rows.sort(key=lambda row: (not row.is_staked, -row.payout_per_sec))
    return rows


__all__ = [
    "CollectCountdown",
    "CollectResult",
    "execute_auto_collect",
    "list_sponsorships",
    "should_auto_collect",
    "time_until_next_collect",
]
