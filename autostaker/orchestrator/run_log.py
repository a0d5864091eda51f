from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from autostaker.config import repo_root


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_json(path: Path, obj: Dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, sort_keys=True, default=str), encoding="utf-8")


class RunLogger:
    """Per-cycle event sink writing ``events.jsonl`` and ``actions.jsonl`` under ``runs/<timestamp>``."""

    def __init__(self, base_dir: Optional[Path] = None, console: Optional[Console] = None, echo: bool = False) -> None:
        base = Path(base_dir) if base_dir else repo_root() / "runs"
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        self.run_dir = base / timestamp
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.events_path = self.run_dir / "events.jsonl"
        self.actions_path = self.run_dir / "actions.jsonl"
        self._events_file = self.events_path.open("a", encoding="utf-8")
        self._actions_file = self.actions_path.open("a", encoding="utf-8")
        self.console = console or Console()
        self.echo = echo
        self.events: List[Dict[str, Any]] = []
        self.actions: List[Dict[str, Any]] = []

    def event(self, name: str, **fields: Any) -> None:
        entry = {"ts": _utc_now_iso(), "event": name, **fields}
        self.events.append(entry)
        self._events_file.write(json.dumps(entry, default=str) + "\n")
        self._events_file.flush()
        if self.echo:
            self.console.log(f"[bold]{name}[/bold] {fields}")

    def action(self, record: Dict[str, Any]) -> None:
        entry = {"ts": _utc_now_iso(), **record}
        self.actions.append(entry)
        self._actions_file.write(json.dumps(entry, default=str) + "\n")
        self._actions_file.flush()

    def event_counts(self) -> Dict[str, int]:
        return dict(Counter(entry.get("event") for entry in self.events))

    def write_summary(self, summary: Dict[str, Any]) -> Path:
        path = self.run_dir / "run_summary.json"
        write_json(path, summary)
        return path

    def summarize(self) -> None:
        table = Table(title="Autostaker Run Summary")
        table.add_column("Action")
        table.add_column("Status")
        table.add_column("Tx / Error")
        for entry in self.actions:
            detail = entry.get("tx_hash") or entry.get("error") or ""
            table.add_row(str(entry.get("description", entry.get("type"))), str(entry.get("status")), str(detail))
        if not self.actions:
            table.add_row("-", "nothing to do", "")
        self.console.print(table)

    def close(self) -> None:
        self._events_file.close()
        self._actions_file.close()

    def __enter__(self) -> "RunLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["RunLogger", "write_json"]
