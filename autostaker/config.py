from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autostaker.core.exceptions import ConfigError
from autostaker.core.units import data_to_wei

_CONFIG_CACHE: Dict[str, Any] | None = None

DEFAULT_MAX_SPONSORSHIP_COUNT = 20
DEFAULT_MIN_TRANSACTION_AMOUNT = 100
DEFAULT_MAX_ACCEPTABLE_MIN_OPERATOR_COUNT = 4
DEFAULT_AUTO_COLLECT_INTERVAL_HOURS = 24


def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    root = repo_root()
    env_path = root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = Path(path) if path else Path(os.getenv("AUTOSTAKER_CONFIG", root / "config" / "default.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def get_config(refresh: bool = False) -> Dict[str, Any]:
    global _CONFIG_CACHE
    if refresh or _CONFIG_CACHE is None:
        _CONFIG_CACHE = load_config()
    return _CONFIG_CACHE


class AutostakerConfig(BaseModel):
    """Per-operator settings, read at the start of a cycle and never mutated by the engine."""

    max_sponsorship_count: int = Field(default=DEFAULT_MAX_SPONSORSHIP_COUNT, ge=0)
    min_transaction_amount: int = Field(default=DEFAULT_MIN_TRANSACTION_AMOUNT, ge=0)
    max_acceptable_min_operator_count: int = Field(default=DEFAULT_MAX_ACCEPTABLE_MIN_OPERATOR_COUNT, ge=0)
    enabled: bool = False
    auto_collect_enabled: bool = True
    auto_collect_interval_hours: float = Field(default=DEFAULT_AUTO_COLLECT_INTERVAL_HOURS, gt=0)
    last_collect_time: Optional[datetime] = None
    ignore_first_collect: bool = True
    excluded_sponsorships: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("excluded_sponsorships")
    @classmethod
    def _lowercase_ids(cls, value: List[str]) -> List[str]:
        return sorted({item.strip().lower() for item in value if item and item.strip()})

    @property
    def min_transaction_amount_wei(self) -> int:
        return data_to_wei(self.min_transaction_amount)


class ExecutionSettings(BaseModel):
    max_retry_attempts: int = Field(default=5, ge=0)
    retry_delay_sec: float = Field(default=3.0, ge=0)
    tx_delay_sec: float = Field(default=2.0, ge=0)
    queue_payout_delay_sec: float = Field(default=1.0, ge=0)
    confirmation_timeout_sec: float = Field(default=180.0, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


def _validated(model, payload: Dict[str, Any], context: str):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {context} configuration: {exc}") from exc


def operator_config(cfg: Dict[str, Any], operator_id: str, state: Optional[Dict[str, Any]] = None) -> AutostakerConfig:
    """Merge the ``autostaker`` defaults with ``operators.<id>`` overrides and runtime state."""
    merged: Dict[str, Any] = dict(cfg.get("autostaker") or {})
    overrides = cfg.get("operators") or {}
    for key, value in overrides.items():
        if str(key).lower() == operator_id.lower():
            merged.update(value or {})
            break
    if state:
        merged.update({key: value for key, value in state.items() if key == "last_collect_time"})
    return _validated(AutostakerConfig, merged, f"autostaker[{operator_id}]")


def execution_settings(cfg: Dict[str, Any]) -> ExecutionSettings:
    return _validated(ExecutionSettings, dict(cfg.get("execution") or {}), "execution")


def _state_path(operator_id: str, state_dir: Optional[Path] = None) -> Path:
    base = Path(state_dir) if state_dir else repo_root() / "state"
    return base / f"{operator_id.lower()}.json"


def load_operator_state(operator_id: str, state_dir: Optional[Path] = None) -> Dict[str, Any]:
    path = _state_path(operator_id, state_dir)
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def save_operator_state(operator_id: str, state: Dict[str, Any], state_dir: Optional[Path] = None) -> Path:
    path = _state_path(operator_id, state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return path
