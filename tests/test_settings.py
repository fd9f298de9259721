from datetime import date

import pytest

from neuron_hub.core.config.settings import (
    DEFAULT_SETTINGS,
    SettingsError,
    env_overrides,
    load_and_merge,
    load_settings_file,
    merged_settings,
    parse_now,
)
from neuron_hub.core.periods.burn_periods import system_clock


def test_defaults():
    s = merged_settings()
    assert s.snapshot_file == DEFAULT_SETTINGS["snapshot_file"]
    assert s.now is None
    assert s.log_level == "WARNING"
    assert s.clock() is system_clock


def test_load_settings_file_example():
    raw = load_settings_file("examples/settings.yaml")
    s = merged_settings(raw)
    assert s.now == date(2026, 10, 15)
    assert s.log_level == "INFO"
    assert s.clock()() == date(2026, 10, 15)


def test_settings_file_rejects_unknown_keys(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text("snapshot_dir: x\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(str(p))


def test_empty_settings_file(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text("", encoding="utf-8")
    assert load_settings_file(str(p)) == {}


def test_parse_now_forms():
    assert parse_now("2026-10") == date(2026, 10, 1)
    assert parse_now("2026-10-15") == date(2026, 10, 15)
    assert parse_now(date(2026, 1, 2)) == date(2026, 1, 2)
    assert parse_now("") is None
    with pytest.raises(SettingsError):
        parse_now("next tuesday")


def test_invalid_values():
    with pytest.raises(SettingsError):
        merged_settings({"log_level": "LOUD"})
    with pytest.raises(SettingsError):
        merged_settings({"snapshot_file": " "})


def test_log_level_is_case_insensitive():
    assert merged_settings({"log_level": "debug"}).log_level == "DEBUG"


def test_env_overrides_win_over_file():
    env = {"NEURON_HUB_NOW": "2027-02", "NEURON_HUB_SNAPSHOT_FILE": "other.json", "UNRELATED": "1"}
    assert env_overrides(env) == {"now": "2027-02", "snapshot_file": "other.json"}

    s = load_and_merge("examples/settings.yaml", environ=env)
    assert s.now == date(2027, 2, 1)
    assert s.snapshot_file == "other.json"
    assert s.log_level == "INFO"


def test_load_and_merge_without_file():
    s = load_and_merge(None, environ={})
    assert s == merged_settings()


def test_settings_file_with_malformed_yaml(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text("now: [unclosed\n", encoding="utf-8")
    with pytest.raises(SettingsError, match="not valid YAML"):
        load_settings_file(str(p))
