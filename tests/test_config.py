from datetime import datetime, timezone

import pytest

from autostaker.config import (
    AutostakerConfig,
    execution_settings,
    load_config,
    load_operator_state,
    operator_config,
    save_operator_state,
)
from autostaker.core.exceptions import ConfigError

OPERATOR = "0xAbCdEf0000000000000000000000000000000001"


def test_default_config_file_loads():
    cfg = load_config()
    config = operator_config(cfg, OPERATOR)
    assert config.max_sponsorship_count == 20
    assert config.min_transaction_amount_wei == 100 * 10**18
    assert execution_settings(cfg).max_retry_attempts == 5


def test_operator_overrides_merge_case_insensitively():
    cfg = {
        "autostaker": {"max_sponsorship_count": 10, "min_transaction_amount": 50},
        "operators": {OPERATOR.lower(): {"max_sponsorship_count": 3, "enabled": True}},
    }
    config = operator_config(cfg, OPERATOR)
    assert config.max_sponsorship_count == 3
    assert config.min_transaction_amount == 50
    assert config.enabled is True

    other = operator_config(cfg, "0x" + "99" * 20)
    assert other.max_sponsorship_count == 10
    assert other.enabled is False


def test_invalid_values_raise_config_error():
    with pytest.raises(ConfigError):
        operator_config({"autostaker": {"max_sponsorship_count": -1}}, OPERATOR)
    with pytest.raises(ConfigError):
        operator_config({"autostaker": {"max_sponsorship_cnt": 5}}, OPERATOR)
    with pytest.raises(ConfigError):
        execution_settings({"execution": {"confirmation_timeout_sec": 0}})


def test_non_mapping_config_file_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_exclusions_are_normalized():
    config = AutostakerConfig(excluded_sponsorships=["0xABC", " 0xabc ", "", "0xDEF"])
    assert config.excluded_sponsorships == ["0xabc", "0xdef"]


def test_state_round_trip_feeds_last_collect_time(tmp_path):
    stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert load_operator_state(OPERATOR, state_dir=tmp_path) == {}

    path = save_operator_state(OPERATOR, {"last_collect_time": stamp.isoformat()}, state_dir=tmp_path)
    assert path.name == f"{OPERATOR.lower()}.json"

    state = load_operator_state(OPERATOR, state_dir=tmp_path)
    config = operator_config({}, OPERATOR, state)
    assert config.last_collect_time == stamp
