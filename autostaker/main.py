from __future__ import annotations

import argparse
import asyncio
import re
import time
from contextlib import AsyncExitStack
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from autostaker.config import (
    execution_settings,
    get_config,
    load_config,
    load_operator_state,
    operator_config,
    repo_root,
    save_operator_state,
)
from autostaker.core.exceptions import ConfigError, LedgerError, ProviderMisconfigured, UpstreamError
from autostaker.core.units import format_data
from autostaker.data.graph.provider import CircuitBreakerOpen, GraphProvider, get_query_provider
from autostaker.ledger.simulated import SimulatedChain, SimulatedLedger, SimulatedQueryProvider
from autostaker.orchestrator.collect import list_sponsorships, time_until_next_collect
from autostaker.orchestrator.runner import CycleResult, run_cycle

COMMANDS = ["plan", "run", "bot", "sponsorships", "mock-subgraph"]

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

console = Console()


def _operator_address(value: str) -> str:
    text = value.strip()
    if not _ADDRESS_RE.match(text):
        raise argparse.ArgumentTypeError(f"Not an operator contract address: {value!r}")
    return text.lower()


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {value!r}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Operator autostaker CLI")
    parser.add_argument("command", choices=COMMANDS, help="Command to run")
    parser.add_argument("--operator", type=_operator_address, default=None, help="Operator contract address")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--simulate", action="store_true", help="Execute against an in-memory ledger")
    parser.add_argument("--interval-minutes", type=_positive_int, default=None, help="Bot cycle interval")
    parser.add_argument("--max-cycles", type=_positive_int, default=None, help="Stop the bot after N cycles")
    parser.add_argument("--port", type=_positive_int, default=8799, help="Port for mock-subgraph")
    return parser


async def _open_backends(
    stack: AsyncExitStack, operator_id: str, cfg: dict, simulate: bool, need_ledger: bool
) -> Tuple[object, object]:
    query = get_query_provider()
    if isinstance(query, GraphProvider):
        await stack.enter_async_context(query)
    if simulate:
        config = operator_config(cfg, operator_id)
        chain = await SimulatedChain.from_query(
            query, operator_id, config.max_acceptable_min_operator_count, int(time.time())
        )
        return SimulatedQueryProvider(chain), SimulatedLedger(chain)
    if not need_ledger:
        return query, None
    from autostaker.ledger.web3_ledger import LedgerSettings, Web3OperatorLedger

    return query, Web3OperatorLedger(LedgerSettings.from_env(), operator_id)


def _print_cycle(result: CycleResult) -> None:
    analysis = result.analysis
    console.print(
        f"[bold]Operator[/bold] {result.summary['operator']}  "
        f"free {format_data(analysis.free_balance)} DATA  "
        f"queue {format_data(analysis.undelegation_queue_amount)} DATA  "
        f"staked {format_data(sum(analysis.current_stakes.values()))} DATA"
    )
    if analysis.skipped_reason:
        console.print(f"[yellow]{analysis.skipped_reason}[/yellow]")
    report = result.report
    status_color = "green" if report.success else "red"
    console.print(f"Status: [{status_color}]{report.status}[/{status_color}]  {report.message or ''}")
    console.print(f"Next auto-collect: {result.summary['next_collect']}")
    console.print(f"Artifacts: {result.run_dir}")


async def _cycle(args: argparse.Namespace, cfg: dict, execute: bool) -> CycleResult:
    state = load_operator_state(args.operator)
    config = operator_config(cfg, args.operator, state)
    settings = execution_settings(cfg)
    runs_dir = Path(cfg.get("runs_dir") or "runs")
    if not runs_dir.is_absolute():
        runs_dir = repo_root() / runs_dir
    async with AsyncExitStack() as stack:
        query, ledger = await _open_backends(stack, args.operator, cfg, args.simulate, need_ledger=execute)
        result = await run_cycle(
            query,
            ledger,
            args.operator,
            config,
            settings,
            execute=execute,
            log_dir=runs_dir,
        )
    if execute and result.last_collect_time != config.last_collect_time and not args.simulate:
        state["last_collect_time"] = result.last_collect_time.isoformat() if result.last_collect_time else None
        save_operator_state(args.operator, state)
    _print_cycle(result)
    return result


async def _wait_minutes(minutes: int) -> None:
    await asyncio.sleep(minutes * 60)


async def _bot(args: argparse.Namespace, cfg: dict) -> None:
    interval = args.interval_minutes or int((cfg.get("bot") or {}).get("interval_minutes", 60))
    config = operator_config(cfg, args.operator, load_operator_state(args.operator))
    if not config.enabled and not args.simulate:
        raise ConfigError(f"Autostaker is not enabled for operator {args.operator}; set enabled: true")
    cycles = 0
    while args.max_cycles is None or cycles < args.max_cycles:
        cycles += 1
        console.rule(f"Cycle {cycles} at {datetime.now().isoformat(timespec='seconds')}")
        try:
            await _cycle(args, cfg, execute=True)
        except (UpstreamError, LedgerError, CircuitBreakerOpen) as exc:
            console.print(f"[red]Cycle failed:[/red] {exc}")
        if args.max_cycles is not None and cycles >= args.max_cycles:
            break
        console.print(f"Sleeping {interval} minute(s)")
        await _wait_minutes(interval)


async def _sponsorships(args: argparse.Namespace, cfg: dict) -> None:
    config = operator_config(cfg, args.operator, load_operator_state(args.operator))
    async with AsyncExitStack() as stack:
        query, _ = await _open_backends(stack, args.operator, cfg, simulate=False, need_ledger=False)
        rows = await list_sponsorships(query, args.operator, config.excluded_sponsorships)
    table = Table(title=f"Sponsorships for {args.operator}")
    table.add_column("Sponsorship")
    table.add_column("Stream")
    table.add_column("Payout/day", justify="right")
    table.add_column("Operators", justify="right")
    table.add_column("My stake", justify="right")
    table.add_column("Flags")
    for row in rows:
        flags: List[str] = []
        if row.is_staked:
            flags.append("staked")
        if row.is_excluded:
            flags.append("excluded")
        operators = f"{row.operator_count}/{row.max_operators}" if row.max_operators is not None else str(row.operator_count)
        table.add_row(
            row.id,
            row.stream_id,
            format_data(row.payout_per_sec * 86400),
            operators,
            format_data(row.current_stake),
            ",".join(flags),
        )
    console.print(table)
    console.print(f"Next auto-collect: {time_until_next_collect(config).formatted}")


def cmd_mock_subgraph(port: int) -> None:
    import uvicorn

    uvicorn.run("mock_subgraph.server:app", host="127.0.0.1", port=port, log_level="warning")


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "mock-subgraph":
        cmd_mock_subgraph(args.port)
        return
    if args.operator is None:
        parser.error(f"--operator is required for {args.command}")

    cfg = load_config(args.config) if args.config else get_config(refresh=True)
    try:
        if args.command == "plan":
            asyncio.run(_cycle(args, cfg, execute=False))
        elif args.command == "run":
            asyncio.run(_cycle(args, cfg, execute=True))
        elif args.command == "bot":
            asyncio.run(_bot(args, cfg))
        elif args.command == "sponsorships":
            asyncio.run(_sponsorships(args, cfg))
    except (ConfigError, ProviderMisconfigured) as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
